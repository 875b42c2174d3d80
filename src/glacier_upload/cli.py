"""CLI argument parsing and configuration."""

import argparse

from . import __version__


def parse_args(args: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="glacier-upload",
        description="Upload archives to Amazon S3 Glacier with tree hash verification",
        epilog="""
Examples:
  %(prog)s photos backup.tar                    # Upload a file
  %(prog)s photos backup.tar -d "2024 photos"   # Upload with a description
  %(prog)s photos big.tar --part-size 64MB -w 8 # Multipart with 8 workers
  %(prog)s photos big.tar --resume              # Continue an interrupted upload
  %(prog)s photos --list-uploads                # Show unfinished uploads
  %(prog)s photos --list-parts UPLOAD_ID        # Show parts of an upload
  %(prog)s photos --abort UPLOAD_ID             # Cancel an upload

Environment variables:
  GLACIER_REGION       AWS region (alternative to --region)
  GLACIER_PROFILE      AWS profile (alternative to --profile)
  GLACIER_ACCOUNT_ID   Account id (default: "-", the credentials' account)
  GLACIER_WORKERS      Parallel part uploads (alternative to -w)

Config file: ~/.glacier-upload.toml or ~/.config/glacier-upload/config.toml
""",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument("vault", help="Target vault name")
    parser.add_argument("file", nargs="?", default=None, help="File to upload")

    # Credentials
    cred_group = parser.add_argument_group("Credentials")
    cred_group.add_argument(
        "--region",
        default=None,
        help="AWS region (or set GLACIER_REGION, default: us-east-1)",
    )
    cred_group.add_argument(
        "--profile",
        default=None,
        help="AWS profile name (or set GLACIER_PROFILE)",
    )
    cred_group.add_argument(
        "--account-id",
        default=None,
        help="Account id owning the vault (default: '-')",
    )
    cred_group.add_argument(
        "--endpoint-url",
        default=None,
        metavar="URL",
        help="Override the service endpoint",
    )
    cred_group.add_argument(
        "--config",
        default=None,
        metavar="PATH",
        help="Read configuration from this TOML file",
    )

    # Output
    output_group = parser.add_argument_group("Output")
    output_group.add_argument(
        "--json",
        action="store_true",
        help="Output results as JSON",
    )
    output_group.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        help="Suppress progress output, only show errors",
    )
    output_group.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show debug information",
    )
    output_group.add_argument(
        "--log-file",
        metavar="PATH",
        help="Write logs to file",
    )

    # Upload
    upload_group = parser.add_argument_group("Upload")
    upload_group.add_argument(
        "-d",
        "--description",
        default="",
        help="Archive description (up to 1024 printable ASCII characters)",
    )
    upload_group.add_argument(
        "--part-size",
        metavar="SIZE",
        help="Multipart part size, a power of two from 1MB to 4GB (default: planned from file size)",
    )
    upload_group.add_argument(
        "--multipart-threshold",
        metavar="SIZE",
        help="Use multipart upload for files of at least SIZE (default: 100MB)",
    )
    upload_group.add_argument(
        "--resume",
        action="store_true",
        help="Continue an interrupted multipart upload recorded in the journal",
    )
    upload_group.add_argument(
        "--journal-dir",
        metavar="PATH",
        help="Directory for the resume journal (default: ~/.cache/glacier-upload)",
    )

    # Recovery
    recovery_group = parser.add_argument_group("Recovery")
    mode = recovery_group.add_mutually_exclusive_group()
    mode.add_argument(
        "--list-uploads",
        action="store_true",
        help="List unfinished multipart uploads in the vault",
    )
    mode.add_argument(
        "--list-parts",
        metavar="UPLOAD_ID",
        help="List the parts the service holds for an upload",
    )
    mode.add_argument(
        "--abort",
        metavar="UPLOAD_ID",
        help="Abort an unfinished multipart upload",
    )

    # Reliability
    reliability_group = parser.add_argument_group("Reliability")
    reliability_group.add_argument(
        "--retries",
        type=int,
        default=3,
        metavar="N",
        help="Attempts per request on connection errors (default: 3)",
    )

    # Performance
    perf_group = parser.add_argument_group("Performance")
    perf_group.add_argument(
        "-w",
        "--workers",
        type=int,
        default=None,
        metavar="N",
        help="Number of parallel part uploads (default: 4, max: 32)",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    return parser.parse_args(args)
