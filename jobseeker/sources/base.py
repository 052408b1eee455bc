from abc import ABC, abstractmethod
from typing import Any

from jobseeker.models import SearchRequest


class SearchBackend(ABC):
    @abstractmethod
    def fetch(self, request: SearchRequest) -> Any:
        """Return the decoded JSON body for one planned request."""

    def close(self) -> None:
        pass
