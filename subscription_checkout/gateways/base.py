from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any


class GatewayError(Exception):
    """The provider could not be reached or answered with an error."""


@dataclass
class HostedPageResult:
    hostedpage_id: str | None
    decrypted_hostedpage_id: str | None
    status: str | None
    url: str | None
    expiring_time: str | None
    raw_response_json: str | None


@dataclass
class HostedPageStatusResult:
    status: str | None
    url: str | None
    expiring_time: str | None
    raw_response_json: str | None


class PaymentGateway(ABC):
    """Outbound port to a hosted-payment provider."""

    name: str = ""

    @abstractmethod
    def create_hosted_page(self, payload: dict[str, Any]) -> HostedPageResult:
        raise NotImplementedError

    @abstractmethod
    def get_hosted_page_status(self, hostedpage_id: str) -> HostedPageStatusResult:
        raise NotImplementedError
