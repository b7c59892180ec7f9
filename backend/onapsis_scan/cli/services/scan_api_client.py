"""HTTP client for the Onapsis code scanning service.

This service submits a workspace for scanning:
- POST /cca/v1.0/scan/file - Upload the zipped workspace with its scan configuration

The service answers with a JSON envelope whose ``success`` flag decides
whether the submission was accepted. Accepted submissions carry a job id;
rejected ones carry a result code and a list of diagnostic messages.
"""

from __future__ import annotations

import logging
import os
from typing import Optional

import httpx
from pydantic import ValidationError

from ..archive_utils import WorkspaceArchiver
from ...scanner.errors import (
    ArchiveConstructionError,
    ArchiveError,
    ArchiveUnreadableError,
    ScanRejectedError,
    ScanRequestError,
    ScanResponseParseError,
    ScanTransportError,
    WorkspaceResolutionError,
)
from ...scanner.models import ARCHIVE_NAME, ScanConfig, ScanResponse
from .step_utils import StepUtils, StepUtilsBundle

logger = logging.getLogger(__name__)

SCAN_FILE_PATH = "/cca/v1.0/scan/file"
FILE_FIELD_NAME = "FileUploadContent"
CONFIG_FIELD_NAME = "ScanConfig"


class ScanServer:
    """Client for one scan submission.

    Example usage:
        with ScanServer("https://scanner.example.com", token) as server:
            response = server.scan_project("ui5")
            print(response.result.job_id)
    """

    DEFAULT_TIMEOUT = 60.0  # seconds

    def __init__(
        self,
        server_url: str,
        token: str,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        verify_tls: bool = True,
        transport: Optional[httpx.BaseTransport] = None,
        utils: Optional[StepUtils] = None,
        archiver: Optional[WorkspaceArchiver] = None,
    ):
        """Initialize the scan server client.

        Args:
            server_url: Base URL of the scan service.
            token: Access token, sent as a bearer credential on every request.
            timeout: Request timeout in seconds.
            verify_tls: Whether to verify the service's TLS certificate.
            transport: Optional httpx transport, mainly for tests.
            utils: Host-environment capabilities. Defaults to the real process.
            archiver: Archive builder for the workspace. Defaults to the
                standard include/exclude rules.
        """
        self.server_url = server_url.rstrip("/")
        self.timeout = timeout
        self.verify_tls = verify_tls
        self.utils = utils or StepUtilsBundle()
        self.archiver = archiver or WorkspaceArchiver()
        if not verify_tls:
            logger.warning("TLS certificate verification is disabled for %s", self.server_url)
        self._client = httpx.Client(
            headers={"Authorization": f"Bearer {token}"},
            timeout=timeout,
            verify=verify_tls,
            transport=transport,
        )

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()

    def __enter__(self) -> "ScanServer":
        return self

    def __exit__(self, *args) -> None:
        self.close()

    @property
    def scan_url(self) -> str:
        return f"{self.server_url}{SCAN_FILE_PATH}"

    def scan_project(
        self,
        language: str,
        *,
        scan_name: Optional[str] = None,
        scan_description: Optional[str] = None,
    ) -> ScanResponse:
        """Archive the current workspace and submit it for scanning.

        Args:
            language: Target language tag for the scan asset.
            scan_name: Optional override of the scan name.
            scan_description: Optional override of the scan description.

        Returns:
            The parsed response of an accepted submission.

        Raises:
            WorkspaceResolutionError: If the working directory cannot be resolved.
            ArchiveConstructionError: If the workspace cannot be archived.
            ArchiveUnreadableError: If the archive cannot be reopened for upload.
            ScanTransportError: If the HTTP request fails.
            ScanRequestError: If the service answers with a non-2xx status.
            ScanResponseParseError: If the response body has an unexpected shape.
            ScanRejectedError: If the service rejects the submission.
        """
        logger.info("Getting workspace path...")
        try:
            workspace = self.utils.getcwd()
        except OSError as exc:
            raise WorkspaceResolutionError(f"failed to get workspace path: {exc}") from exc
        archive_path = os.path.join(workspace, ARCHIVE_NAME)

        logger.info("Zipping workspace files...")
        try:
            self.archiver.build(workspace, archive_path)
        except ArchiveError as exc:
            raise ArchiveConstructionError(f"failed to zip workspace files: {exc}") from exc

        envelope = ScanConfig.for_language(language, name=scan_name, description=scan_description)

        logger.info("Getting zip file content...")
        if not self.utils.file_exists(archive_path):
            raise ArchiveUnreadableError(f"unable to locate file {archive_path}", archive_path)
        try:
            handle = self.utils.open(archive_path, "rb")
        except OSError as exc:
            raise ArchiveUnreadableError(f"unable to locate file {archive_path}: {exc}", archive_path) from exc

        with handle:
            response = self._upload(handle, envelope)

        logger.info("Parsing response...")
        scan_response = self._parse(response)

        logger.info("Checking success field...")
        if not scan_response.success:
            raise ScanRejectedError(scan_response)
        if not scan_response.result.job_id:
            raise ScanResponseParseError("failed to parse response: successful response has no job_id")
        return scan_response

    def _upload(self, handle, envelope: ScanConfig) -> httpx.Response:
        logger.info("Sending request to %s", self.scan_url)
        try:
            response = self._client.post(
                self.scan_url,
                files={FILE_FIELD_NAME: (ARCHIVE_NAME, handle, "application/zip")},
                data={CONFIG_FIELD_NAME: envelope.model_dump_json()},
            )
        except httpx.TimeoutException as exc:
            raise ScanTransportError(f"failed to upload file, request timed out: {exc}") from exc
        except httpx.HTTPError as exc:
            raise ScanTransportError(
                f"failed to upload file to {self.server_url}: {exc}"
            ) from exc

        if not response.is_success:
            raise ScanRequestError(
                f"failed to upload file: HTTP {response.status_code}",
                status_code=response.status_code,
                detail=response.text or None,
            )
        return response

    @staticmethod
    def _parse(response: httpx.Response) -> ScanResponse:
        try:
            return ScanResponse.model_validate_json(response.content)
        except ValidationError as exc:
            raise ScanResponseParseError(f"failed to parse response: {exc}") from exc
