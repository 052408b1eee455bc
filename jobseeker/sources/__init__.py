from .base import SearchBackend
from .jobtech import JobTechBackend
from .mock import MockBackend

from jobseeker.config import ApiSettings, offline_mode
from jobseeker.log import get_logger

log = get_logger(__name__)

__all__ = ["SearchBackend", "JobTechBackend", "MockBackend", "get_backend"]


def get_backend(api: ApiSettings, offline: bool | None = None) -> SearchBackend:
    if offline is None:
        offline = offline_mode()
    if offline:
        log.info("Offline mode — using MockBackend")
        return MockBackend()
    log.info("Using JobTech backend at %s", api.base_url)
    return JobTechBackend(api)
