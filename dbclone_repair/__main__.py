import sys

from dbclone_repair.main import main


sys.exit(main())
