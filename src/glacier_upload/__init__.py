"""Upload and verify archives against Amazon S3 Glacier using SHA-256 tree hashes."""

__version__ = "0.1.0"
