"""Entry point for glacier-upload CLI."""

from __future__ import annotations

import json
import os
import sys
from logging import Logger

from .auth import AuthenticationError, AWSCredentials, CredentialManager, is_credential_error
from .cli import parse_args
from .config import Config, load_config
from .errors import (
    ArchiveTooLargeError,
    GlacierError,
    IntegrityMismatchError,
    RemoteRejectedError,
    SessionExpiredError,
    ValidationError,
)
from .exit_codes import ExitCode
from .journal import UploadJournal, journal_key
from .log import get_logger, setup_logging
from .multipart import MultipartUploadSession, list_multipart_uploads
from .output import format_error, format_parts, format_success, format_uploads
from .retry import RetryExhausted
from .transport import RequestsTransport
from .upload import MULTIPART_THRESHOLD_BYTES, PartUploadFailed, parse_size, upload_file

MAX_WORKERS = 32


def _print_error(config: Config, code: str, message: str) -> None:
    if config.json_output:
        print(format_error(code, message, json_output=True))
    else:
        print(f"Error: {message}", file=sys.stderr)


def _exit_code_for(exc: BaseException) -> tuple[ExitCode, str]:
    """Map an exception to an exit code and a machine-readable error code."""
    if is_credential_error(exc):
        return ExitCode.AUTH_FAILURE, "AUTH_FAILED"
    if isinstance(exc, PartUploadFailed):
        return ExitCode.PARTIAL_FAILURE, "PART_UPLOAD_FAILED"
    if isinstance(exc, IntegrityMismatchError):
        return ExitCode.INTEGRITY_ERROR, "INTEGRITY_MISMATCH"
    if isinstance(exc, SessionExpiredError):
        return ExitCode.NOT_FOUND, "UPLOAD_NOT_FOUND"
    if isinstance(exc, (ValidationError, ArchiveTooLargeError)):
        return ExitCode.INVALID_ARGUMENT, "INVALID_ARGUMENT"
    if isinstance(exc, RemoteRejectedError):
        if exc.status == 404:
            return ExitCode.NOT_FOUND, "NOT_FOUND"
        return ExitCode.REMOTE_REJECTED, "REMOTE_REJECTED"
    if isinstance(exc, (RetryExhausted, OSError)):
        return ExitCode.NETWORK_ERROR, "NETWORK_ERROR"
    return ExitCode.REMOTE_REJECTED, "ERROR"


def _create_transport(config: Config) -> RequestsTransport:
    credentials = None
    if config.access_key_id and config.secret_access_key:
        credentials = AWSCredentials(config.access_key_id, config.secret_access_key)

    cred_manager = CredentialManager(
        config.region,
        profile=config.profile,
        credentials=credentials,
    )
    # Resolve now so missing credentials fail before any file is read
    cred_manager.get_credentials()

    return RequestsTransport(
        cred_manager,
        endpoint_url=config.endpoint_url,
        retries=config.retries,
    )


def _handle_list_uploads(transport: RequestsTransport, config: Config) -> int:
    assert config.vault is not None
    uploads = list_multipart_uploads(transport, config.vault, config.account_id)
    print(format_uploads(uploads, json_output=config.json_output, vault=config.vault))
    return ExitCode.SUCCESS


def _handle_list_parts(transport: RequestsTransport, config: Config) -> int:
    assert config.vault is not None and config.list_parts is not None
    session = MultipartUploadSession.attach(
        transport, config.vault, config.list_parts, account_id=config.account_id
    )
    parts = session.list_parts()
    assert session.part_size is not None
    print(
        format_parts(
            parts,
            session.part_size,
            json_output=config.json_output,
            upload_id=config.list_parts,
        )
    )
    return ExitCode.SUCCESS


def _handle_abort(transport: RequestsTransport, config: Config, logger: Logger) -> int:
    assert config.vault is not None and config.abort is not None
    session = MultipartUploadSession.attach(
        transport, config.vault, config.abort, account_id=config.account_id
    )
    session.abort()
    logger.info(f"Aborted upload {config.abort}")
    if config.json_output:
        print(json.dumps({"status": "aborted", "upload_id": config.abort}, indent=2))
    return ExitCode.SUCCESS


def _handle_upload(transport: RequestsTransport, config: Config, logger: Logger) -> int:
    assert config.vault is not None
    if not config.file:
        _print_error(config, "INVALID_ARGUMENT", "A file to upload is required.")
        return ExitCode.INVALID_ARGUMENT
    if not os.path.isfile(config.file):
        _print_error(config, "NOT_FOUND", f"No such file: {config.file}")
        return ExitCode.NOT_FOUND

    try:
        part_size = parse_size(str(config.part_size)) if config.part_size else None
        threshold = (
            parse_size(str(config.multipart_threshold))
            if config.multipart_threshold
            else MULTIPART_THRESHOLD_BYTES
        )
    except ValueError as e:
        _print_error(config, "INVALID_ARGUMENT", str(e))
        return ExitCode.INVALID_ARGUMENT

    journal = UploadJournal(os.path.expanduser(config.journal_dir))
    key = journal_key(config.vault, config.file)
    stale = journal.get(key)
    if stale is not None and not config.resume:
        logger.warning(
            f"Upload {stale.upload_id} of this file is unfinished; starting a new one. "
            f"Use --resume to continue it or --abort {stale.upload_id} to discard it."
        )
        journal.finish(key)

    result = upload_file(
        transport,
        config.vault,
        config.file,
        description=config.description,
        part_size=part_size,
        workers=config.workers,
        multipart_threshold=threshold,
        journal=journal,
        show_progress=not config.quiet and not config.json_output,
        account_id=config.account_id,
    )
    print(format_success(result, json_output=config.json_output))
    return ExitCode.SUCCESS


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)

    config = load_config(
        cli_region=args.region,
        cli_profile=args.profile,
        cli_account_id=args.account_id,
        cli_workers=args.workers,
        config_file=args.config,
        endpoint_url=args.endpoint_url,
        vault=args.vault,
        file=args.file,
        description=args.description,
        list_uploads=args.list_uploads,
        list_parts=args.list_parts,
        abort=args.abort,
        json_output=args.json,
        quiet=args.quiet,
        verbose=args.verbose,
        log_file=args.log_file,
        part_size=args.part_size,
        multipart_threshold=args.multipart_threshold,
        resume=args.resume,
        journal_dir=args.journal_dir,
        retries=args.retries,
    )
    config.workers = max(1, min(config.workers, MAX_WORKERS))

    setup_logging(verbose=config.verbose, quiet=config.quiet, log_file=config.log_file)
    logger = get_logger()

    try:
        transport = _create_transport(config)
    except AuthenticationError as e:
        _print_error(config, "AUTH_FAILED", str(e))
        return ExitCode.AUTH_FAILURE

    try:
        if config.list_uploads:
            return _handle_list_uploads(transport, config)
        if config.list_parts:
            return _handle_list_parts(transport, config)
        if config.abort:
            return _handle_abort(transport, config, logger)
        return _handle_upload(transport, config, logger)
    except KeyboardInterrupt:
        logger.info("Cancelled by user.")
        return ExitCode.USER_CANCELLED
    except (GlacierError, AuthenticationError, RetryExhausted, OSError) as e:
        exit_code, code = _exit_code_for(e)
        _print_error(config, code, str(e))
        if isinstance(e, PartUploadFailed):
            logger.info(f"Run again with --resume to continue upload {e.upload_id}")
        return exit_code
    finally:
        transport.close()


if __name__ == "__main__":
    sys.exit(main())
