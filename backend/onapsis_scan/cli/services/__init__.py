"""Host-environment and HTTP services used by the scan step."""
