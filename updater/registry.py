"""Devbox Search API client."""

import asyncio
from typing import Any

import httpx
import pydantic
from pydantic import BaseModel

from .config import REGISTRY_API
from .errors import DevboxError, NetworkError, ValidationError
from .logger import ActionLogger
from .manifest import validate_package_name
from .models import LATEST, LOOKUP_FAILED, UNKNOWN_VERSION, ParsedPackage, UpdateCandidate
from .retry import RetryMechanism
from .versions import compare_versions


class ResolveResponse(BaseModel):
    """Payload of the /resolve endpoint."""

    name: str = ""
    version: str | None = None
    summary: str = ""
    systems: dict[str, Any] = {}


class PackagePlatform(BaseModel):
    arch: str = ""
    os: str = ""
    system: str = ""
    attribute_path: str = ""
    commit_hash: str = ""
    date: str = ""


class PackageRelease(BaseModel):
    version: str
    last_updated: str = ""
    platforms: list[PackagePlatform] = []
    platforms_summary: str = ""
    outputs_summary: str = ""


class PackageInfo(BaseModel):
    """Payload of the /pkg endpoint."""

    name: str
    summary: str = ""
    homepage_url: str = ""
    license: str = ""
    releases: list[PackageRelease] = []


def build_resolve_url(package_name: str, version: str = LATEST, base_url: str = REGISTRY_API.base_url) -> str:
    params = httpx.QueryParams({"name": package_name, "version": version})
    return f"{base_url}{REGISTRY_API.resolve_endpoint}?{params}"


def build_package_url(package_name: str, base_url: str = REGISTRY_API.base_url) -> str:
    params = httpx.QueryParams({"name": package_name})
    return f"{base_url}{REGISTRY_API.package_endpoint}?{params}"


class DevboxRegistry:
    """Looks up package versions in the Devbox Search registry."""

    def __init__(
        self,
        retry: RetryMechanism,
        log: ActionLogger,
        base_url: str = REGISTRY_API.base_url,
        timeout: float = REGISTRY_API.timeout,
        max_concurrency: int = 6,
        update_latest: bool = False,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the registry client.

        Args:
            retry: Retry engine wrapping every request
            log: Logger
            base_url: Registry API base URL
            timeout: Request timeout in seconds
            max_concurrency: Maximum concurrent lookups
            update_latest: Treat packages pinned to "latest" as updatable
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.retry = retry
        self.log = log
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_concurrency = max_concurrency
        self.update_latest = update_latest
        self._transport = transport
        self._cache: dict[str, str] = {}
        self._semaphore = asyncio.Semaphore(max_concurrency)

    async def get_latest_version(self, package_name: str) -> str:
        """Get the latest version of a package.

        Partial: raises when the lookup cannot complete.

        Args:
            package_name: Name of the package

        Returns:
            Latest version string

        Raises:
            NetworkError: If the registry cannot be reached after retries
            ValidationError: If the response carries no version
        """
        # Check cache first
        if package_name in self._cache:
            return self._cache[package_name]

        validate_package_name(package_name)
        url = build_resolve_url(package_name, LATEST, self.base_url)

        data = await self.retry.retry_network_request(
            lambda: self._request_json(url),
            f"resolve {package_name}",
        )

        try:
            response = ResolveResponse.model_validate(data)
        except pydantic.ValidationError as e:
            raise ValidationError(
                f"Malformed registry response for package: {package_name}",
                {"packageName": package_name, "error": str(e)},
            ) from e

        if not response.version:
            raise ValidationError(
                f"No version information found for package: {package_name}",
                {"packageName": package_name, "response": data},
            )

        self._cache[package_name] = response.version
        return response.version

    async def get_package_info(self, package_name: str) -> PackageInfo:
        """Query descriptive metadata for a package. Partial."""
        url = build_package_url(package_name, self.base_url)
        data = await self.retry.retry_network_request(
            lambda: self._request_json(url),
            f"package info {package_name}",
        )

        try:
            return PackageInfo.model_validate(data)
        except pydantic.ValidationError as e:
            raise ValidationError(
                f"Malformed package info for {package_name}",
                {"packageName": package_name, "error": str(e)},
            ) from e

    async def check_for_updates(self, package: ParsedPackage) -> UpdateCandidate:
        """Check whether a package has a newer version.

        Total: never raises. Lookup failures produce a candidate with
        latest_version "lookup-failed" and no update available.
        """
        current_version = package.version or UNKNOWN_VERSION

        try:
            latest_version = await self.get_latest_version(package.name)
        except Exception as e:
            self.log.warn(f"Could not look up {package.name}: {e}")
            return UpdateCandidate(
                package_name=package.name,
                current_version=current_version,
                latest_version=LOOKUP_FAILED,
                update_available=False,
            )

        if package.version == LATEST:
            # Only the lock file changes for "latest" pins, and only when asked
            update_available = self.update_latest
        elif not package.version:
            update_available = True
        else:
            update_available = compare_versions(latest_version, package.version) > 0

        return UpdateCandidate(
            package_name=package.name,
            current_version=current_version,
            latest_version=latest_version,
            update_available=update_available,
        )

    async def check_multiple_packages_for_updates(self, packages: list[ParsedPackage]) -> list[UpdateCandidate]:
        """Check many packages concurrently.

        Total: returns one candidate per input package, in input order.
        """

        async def check(package: ParsedPackage) -> UpdateCandidate:
            async with self._semaphore:
                return await self.check_for_updates(package)

        results = await asyncio.gather(*(check(p) for p in packages), return_exceptions=True)

        candidates = []
        for package, result in zip(packages, results):
            if isinstance(result, BaseException):
                self.log.warn(f"Update check for {package.name} did not complete: {result}")
                result = UpdateCandidate(
                    package_name=package.name,
                    current_version=package.version or UNKNOWN_VERSION,
                    latest_version=LOOKUP_FAILED,
                    update_available=False,
                )
            candidates.append(result)
        return candidates

    async def _request_json(self, url: str) -> Any:
        """Perform a single GET and decode the JSON body.

        Raises:
            NetworkError: Transport failures, rate limiting and 5xx responses
            ValidationError: 404 responses and undecodable bodies
            DevboxError: Any other non-success status
        """
        headers = {
            "Accept": "application/json",
            "User-Agent": REGISTRY_API.user_agent,
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout, headers=headers, transport=self._transport) as client:
                response = await client.get(url)
        except httpx.TimeoutException as e:
            raise NetworkError(f"Request timeout after {self.timeout}s", {"url": url}) from e
        except httpx.TransportError as e:
            raise NetworkError(f"Network error requesting {url}: {e}", {"url": url}) from e

        status = response.status_code
        if status == 429 or status >= 500:
            raise NetworkError(
                f"HTTP {status}: {response.reason_phrase}",
                {"url": url, "status": status},
            )
        if status == 404:
            raise ValidationError(f"Package not found in registry (HTTP 404): {url}", {"url": url, "status": status})
        if response.is_error:
            raise DevboxError(
                f"HTTP {status}: {response.reason_phrase}",
                "HTTP_ERROR",
                {"url": url, "status": status},
            )

        try:
            return response.json()
        except ValueError as e:
            raise ValidationError(f"Registry returned invalid JSON for {url}", {"url": url}) from e
