import inspect
from collections.abc import Callable
from datetime import timedelta
from functools import wraps
from logging import getLogger
from typing import Any
from typing import Optional

from fastapi import Request
from fastapi import Response
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool
from starlette.status import HTTP_200_OK
from starlette.status import HTTP_304_NOT_MODIFIED

from fastapi_pagecache.backends import FileSystemCacheAdapter
from fastapi_pagecache.config import PageCacheConfig
from fastapi_pagecache.exceptions import CacheError
from fastapi_pagecache.exceptions import CacheWriteError
from fastapi_pagecache.exceptions import InvalidKeyError
from fastapi_pagecache.headers import HEADER_EXPIRES
from fastapi_pagecache.headers import HEADER_NOT_MODIFIED
from fastapi_pagecache.headers import HttpHeaders
from fastapi_pagecache.headers import format_http_date
from fastapi_pagecache.log import configure_log_file
from fastapi_pagecache.storage import CacheItemStorage
from fastapi_pagecache.strategy import DefaultStrategy
from fastapi_pagecache.strategy import KeyStrategy
from fastapi_pagecache.types import CacheItem
from fastapi_pagecache.types import CacheState

logger = getLogger(__name__)


async def get_response(func: Callable, *args: Any, **kwargs: Any) -> Any:
    """Get the response from the function."""
    if inspect.iscoroutinefunction(func):
        return await func(*args, **kwargs)
    else:
        return await run_in_threadpool(func, *args, **kwargs)


def as_response(result: Any) -> Response:
    """Turn an endpoint's return value into a response object."""
    if isinstance(result, Response):
        return result
    return JSONResponse(content=jsonable_encoder(result))


class PageCache:
    """Serve whole pages from the filesystem cache.

    Args:
        config: Cache configuration
        strategy: Computes the cache key of a request. Defaults to
            :class:`DefaultStrategy` configured from ``config``.
        storage: Item storage, built from ``config`` when omitted
    """

    def __init__(
        self,
        config: PageCacheConfig,
        strategy: Optional[KeyStrategy] = None,
        storage: Optional[CacheItemStorage] = None,
    ) -> None:
        self.config = config
        self.strategy = strategy or DefaultStrategy(
            use_session=config.use_session,
            session_exclude_keys=config.session_exclude_keys,
        )

        if storage is None:
            adapter = FileSystemCacheAdapter(
                config.cache_path,
                file_lock=config.file_lock,
                min_file_size=config.min_cache_file_size,
            )
            storage = CacheItemStorage(adapter, config.cache_expiration_in_seconds)
        self.storage = storage

        self.http_headers = HttpHeaders(send_headers=config.send_headers)

        if config.enable_log and config.log_file_path is not None:
            configure_log_file(config.log_file_path)

    def resolve_key(self, request: Request) -> str:
        """Cache key of the page addressed by ``request``."""
        return self.strategy.compute_key(request)

    async def get_page_cache(self, request: Request) -> Optional[CacheItem]:
        """Return the cached page for ``request``, if there is a valid one."""
        return await run_in_threadpool(self.storage.get, self.resolve_key(request))

    async def clear_page_cache(self, request: Request) -> None:
        """Remove the cached page for ``request``."""
        key = self.resolve_key(request)
        logger.info("Deleting page cache <%s>", key)
        await run_in_threadpool(self.storage.delete, CacheItem(key=key))

    async def clear_all_cache(self) -> None:
        """Remove every cached page."""
        logger.info("Clearing all page cache under <%s>", self.config.cache_path)
        await run_in_threadpool(self.storage.clear)

    def response_headers(self, item: CacheItem) -> dict[str, str]:
        headers = self.http_headers.validator_headers(item)
        if self.config.send_headers and HEADER_EXPIRES not in headers:
            expires_at = item.created_at + timedelta(
                seconds=self.config.cache_expiration_in_seconds
            )
            headers[HEADER_EXPIRES] = format_http_date(expires_at)
        return headers

    def build_item(self, key: str, response: Response) -> CacheItem:
        """Capture a freshly generated response as a cache item."""
        item = CacheItem(
            key=key,
            content=bytes(response.body),
            media_type=response.headers.get("content-type"),
        )

        if self.config.send_headers and self.config.forward_headers:
            forwarded = self.http_headers.detect_forwarded_validators(response.headers)
            item.last_modified = forwarded.last_modified
            item.expires_at = forwarded.expires
            item.etag = forwarded.etag

        item.apply_default_validators()
        return item

    async def store(self, item: CacheItem) -> bool:
        """Persist ``item``, logging instead of raising on write failures."""
        try:
            await run_in_threadpool(self.storage.set, item)
        except CacheWriteError as exc:
            if exc.is_lock_contention:
                logger.info("Cache <%s> is being written by another request", item.key)
            else:
                logger.warning("Cache <%s> was not saved: %s", item.key, exc)
            return False
        except CacheError as exc:
            logger.error("Cache <%s> was not saved: %s", item.key, exc)
            return False

        logger.debug("Cache <%s> saved", item.key)
        return True

    def cache(self) -> Callable:
        """Decorate a FastAPI endpoint so its GET responses are page cached."""

        def decorator(func: Callable) -> Callable:  # noqa: C901
            # Analyze the original function's signature
            sig = inspect.signature(func)
            params = list(sig.parameters.values())

            request_name = next(
                (
                    param.name
                    for param in params
                    if param.annotation == Request or param.annotation == Optional[Request]
                ),
                None,
            )

            # Add Request parameter if it's not present
            injected = request_name is None
            if injected:
                request_name = "request"
                request_param = inspect.Parameter(
                    request_name,
                    inspect.Parameter.KEYWORD_ONLY,
                    annotation=Request,
                )
                sig = sig.replace(parameters=[*params, request_param])
                func.__signature__ = sig

            @wraps(func)
            async def wrapper(*args: Any, **kwargs: Any) -> Response:  # noqa: C901
                request: Request | None = (
                    kwargs.pop(request_name, None) if injected else kwargs.get(request_name)
                )

                # Only cache GET requests
                if request is None or request.method != "GET":
                    return await get_response(func, *args, **kwargs)

                dry_run = self.config.dry_run_mode
                key = self.resolve_key(request)
                try:
                    item = await run_in_threadpool(self.storage.get, key)
                except InvalidKeyError as exc:
                    logger.warning("Page cache bypassed: %s", exc)
                    return await get_response(func, *args, **kwargs)

                state = self.http_headers.decide(item, request.headers)

                if state is CacheState.HIT_FRESH_304:
                    logger.debug("%s <%s>", HEADER_NOT_MODIFIED, key)
                    if not dry_run:
                        return Response(
                            status_code=HTTP_304_NOT_MODIFIED,
                            headers=self.response_headers(item),
                        )
                elif state is CacheState.HIT_FULL_200:
                    logger.debug("Serving <%s> from cache", key)
                    if not dry_run:
                        return Response(
                            content=item.content,
                            media_type=item.media_type,
                            headers=self.response_headers(item),
                        )

                if dry_run and state is not CacheState.MISS:
                    logger.debug("Dry run, returning live response for <%s>", key)

                response = as_response(await get_response(func, *args, **kwargs))

                if state is not CacheState.MISS:
                    return response

                if response.status_code != HTTP_200_OK or not hasattr(response, "body"):
                    logger.debug("Response for <%s> is not cacheable", key)
                    return response

                new_item = self.build_item(key, response)
                await self.store(new_item)

                if not dry_run:
                    response.headers.update(self.response_headers(new_item))
                return response

            return wrapper

        return decorator
