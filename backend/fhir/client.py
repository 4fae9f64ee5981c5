"""FHIR REST client and the backend interfaces the booking core depends on."""

import logging
from typing import Mapping, Protocol, Sequence

import httpx

from backend.core import config
from backend.core.errors import FhirServerError
from backend.fhir.references import Reference
from backend.fhir.transaction import OperationOutcome, TransactionOperation, parse_transaction_response, to_bundle

logger = logging.getLogger(__name__)

FHIR_JSON = 'application/fhir+json'


class TransactionApplier(Protocol):
    async def apply(self, operations: Sequence[TransactionOperation]) -> list[OperationOutcome]:
        """Apply every operation atomically or none of them.

        Raises FhirServerError when the backend rejects the submission.
        """
        ...


class FhirBackend(TransactionApplier, Protocol):
    async def read(self, reference: Reference) -> dict | None:
        ...

    async def search(self, resource_type: str, params: Mapping[str, str]) -> list[dict]:
        ...

    async def create(self, resource: dict) -> dict:
        ...


def _error_detail(response: httpx.Response):
    try:
        return response.json()
    except ValueError:
        return response.text


def _next_link(bundle: dict) -> str | None:
    for link in bundle.get('link') or []:
        if link.get('relation') == 'next' and link.get('url'):
            return link['url']
    return None


class FhirClient:
    """Async FHIR client over a shared ``httpx.AsyncClient``.

    Owned by the application; call ``aclose`` on shutdown.
    """

    def __init__(
        self,
        base_url: str = config.FHIR_SERVER_BASE,
        timeout: float = config.FHIR_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip('/')
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
            verify=config.FHIR_VERIFY_TLS,
            headers={'Accept': FHIR_JSON},
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            return await self._client.request(method, url, **kwargs)
        except httpx.TimeoutException as exc:
            logger.warning('FHIR %s %s timed out', method, url)
            raise FhirServerError('FHIR server timed out.') from exc
        except httpx.HTTPError as exc:
            logger.warning('FHIR %s %s failed: %s', method, url, exc)
            raise FhirServerError('FHIR server unreachable.', detail=str(exc)) from exc

    async def read(self, reference: Reference) -> dict | None:
        response = await self._request('GET', f'/{reference}')
        if response.status_code in (404, 410):
            return None
        if response.is_error:
            raise FhirServerError(
                f'Reading {reference} failed with HTTP {response.status_code}.',
                status=response.status_code,
                detail=_error_detail(response),
            )
        return response.json()

    async def search(self, resource_type: str, params: Mapping[str, str]) -> list[dict]:
        """Return every matching resource, following ``next`` links across pages.

        Entries of any other type (OperationOutcome warnings, ``_include``d
        resources) are dropped.
        """
        resources: list[dict] = []
        url, query = f'/{resource_type}', dict(params)
        for _ in range(config.FHIR_MAX_SEARCH_PAGES):
            response = await self._request('GET', url, params=query)
            if response.is_error:
                raise FhirServerError(
                    f'{resource_type} search failed with HTTP {response.status_code}.',
                    status=response.status_code,
                    detail=_error_detail(response),
                )
            bundle = response.json()
            for entry in bundle.get('entry') or []:
                resource = entry.get('resource') or {}
                if resource.get('resourceType') == resource_type:
                    resources.append(resource)

            url = _next_link(bundle)
            if url is None:
                return resources
            query = None
        logger.warning('%s search stopped after %d pages', resource_type, config.FHIR_MAX_SEARCH_PAGES)
        return resources

    async def create(self, resource: dict) -> dict:
        resource_type = resource['resourceType']
        response = await self._request(
            'POST',
            f'/{resource_type}',
            json=resource,
            headers={'Content-Type': FHIR_JSON, 'Prefer': 'return=representation'},
        )
        if response.is_error:
            raise FhirServerError(
                f'Creating {resource_type} failed with HTTP {response.status_code}.',
                status=response.status_code,
                detail=_error_detail(response),
            )
        return response.json()

    async def apply(self, operations: Sequence[TransactionOperation]) -> list[OperationOutcome]:
        logger.debug('Posting transaction bundle with %d entries', len(operations))
        response = await self._request(
            'POST',
            '',
            json=to_bundle(operations),
            headers={'Content-Type': FHIR_JSON},
        )
        if response.is_error:
            raise FhirServerError(
                f'Transaction rejected with HTTP {response.status_code}.',
                status=response.status_code,
                detail=_error_detail(response),
            )
        return parse_transaction_response(response.json())
