"""Process-level infrastructure: database engines and schema migrations."""
