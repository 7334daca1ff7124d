"""Storage-side primitives: disk mounting, file discovery and errors."""
