from __future__ import annotations

import argparse
import json
import logging
import sys
import time
from typing import Any, Dict, Optional

import httpx

from ..config.config_manager import StepConfig, load_step_config
from ..scanner.errors import ScanRejectedError, ScanStepError
from ..scanner.models import ScanResponse
from .services.scan_api_client import ScanServer
from .services.step_utils import StepUtils, StepUtilsBundle

logger = logging.getLogger(__name__)

STEP_NAME = "onapsisExecuteScan"


def run_scan_step(
    config: StepConfig,
    utils: Optional[StepUtils] = None,
    *,
    transport: Optional[httpx.BaseTransport] = None,
) -> ScanResponse:
    """Submit the current workspace for scanning and emit the step telemetry.

    Raises:
        ScanStepError: Any failure of the step, already wrapped with context.
    """
    utils = utils or StepUtilsBundle()
    telemetry: Dict[str, Any] = {"step": STEP_NAME, "language": config.language}
    started = time.monotonic()
    try:
        logger.info("Creating scan server...")
        with ScanServer(
            config.scan_service_url,
            config.access_token,
            timeout=config.request_timeout,
            verify_tls=config.verify_tls,
            transport=transport,
            utils=utils,
        ) as server:
            logger.info("Scanning project...")
            response = server.scan_project(
                config.language,
                scan_name=config.scan_name,
                scan_description=config.scan_description,
            )
    except ScanStepError as exc:
        telemetry.update(outcome="failure", error_code=exc.code, error_category=exc.category.value)
        if isinstance(exc, ScanRejectedError):
            telemetry["result_code"] = exc.result_code
        raise
    else:
        telemetry.update(outcome="success", job_id=response.result.job_id)
        logger.info("JobID: %s", response.result.job_id)
        return response
    finally:
        telemetry["duration_ms"] = int((time.monotonic() - started) * 1000)
        utils.emit_telemetry(telemetry)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="onapsis-scan",
        description="Zip the current workspace and submit it to the Onapsis scan service.",
    )
    parser.add_argument(
        "--scan-service-url",
        help="Base URL of the scan service (env: SCAN_SERVICE_URL).",
    )
    parser.add_argument(
        "--access-token",
        help="Access token for the scan service (env: SCAN_ACCESS_TOKEN).",
    )
    parser.add_argument(
        "--language",
        help="Language of the scanned sources (env: SCAN_LANGUAGE, default: ui5).",
    )
    parser.add_argument(
        "--request-timeout",
        help="Upload timeout in seconds (env: SCAN_REQUEST_TIMEOUT, default: 60).",
    )
    parser.add_argument(
        "--insecure",
        dest="verify_tls",
        action="store_const",
        const=False,
        help="Skip TLS certificate verification (env: SCAN_VERIFY_TLS=false).",
    )
    parser.add_argument("--scan-name", help="Name reported for the scan.")
    parser.add_argument("--scan-description", help="Description reported for the scan.")
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print the service response as JSON instead of the job id.",
    )
    parser.add_argument(
        "--verbose",
        action="store_const",
        const=True,
        help="Enable debug logging (env: SCAN_VERBOSE).",
    )
    return parser


def main(argv: list[str] | None = None, utils: Optional[StepUtils] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    overrides = {key: value for key, value in vars(args).items() if key != "json"}

    try:
        config = load_step_config(overrides)
    except ScanStepError as exc:
        logging.basicConfig(level=logging.INFO)
        return _report_failure(exc)

    logging.basicConfig(
        level=logging.DEBUG if config.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        response = run_scan_step(config, utils)
    except ScanStepError as exc:
        return _report_failure(exc)

    if args.json:
        print(response.model_dump_json(indent=2))
    else:
        print(f"JobID: {response.result.job_id}")
    return 0


def _report_failure(exc: ScanStepError) -> int:
    logger.error("step execution failed: %s", exc)
    payload = {"error": exc.code, "category": exc.category.value, "message": str(exc)}
    print(json.dumps(payload), file=sys.stderr)
    return 1


if __name__ == "__main__":
    sys.exit(main())
