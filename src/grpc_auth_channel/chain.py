"""An ordered, immutable list of interceptors applied to every call."""

from typing import Iterable, Iterator, Tuple

from grpc.aio import Metadata
from grpc_interceptor import AsyncClientInterceptor

from grpc_auth_channel.interceptor import Interceptor, RawMetadata, copy_metadata


class InterceptorChain(AsyncClientInterceptor):
    """Runs interceptors in insertion order on the metadata of each call.

    Every interceptor runs on every call. If one raises, the remaining ones
    are skipped and the call is never sent. An empty chain passes metadata
    through unchanged.
    """

    def __init__(self, interceptors: Iterable[Interceptor] = ()):
        items = tuple(interceptors)
        for interceptor in items:
            if not isinstance(interceptor, Interceptor):
                raise ValueError(
                    f"Interceptor {interceptor!r} must be {Interceptor.__name__}")
        self._interceptors: Tuple[Interceptor, ...] = items

    @property
    def interceptors(self) -> Tuple[Interceptor, ...]:
        return self._interceptors

    def __len__(self):
        return len(self._interceptors)

    def __iter__(self) -> Iterator[Interceptor]:
        return iter(self._interceptors)

    def __repr__(self):
        return f"InterceptorChain({list(self._interceptors)!r})"

    async def apply(self, metadata: RawMetadata = None) -> Metadata:
        """Returns a decorated copy of metadata; the argument is not modified."""
        result = copy_metadata(metadata)
        for interceptor in self._interceptors:
            result = await interceptor.intercept(result)
        return result

    async def intercept(self, method, request_or_iterator, call_details):
        """Send the call with the chain's metadata."""
        metadata = await self.apply(call_details.metadata)
        new_details = call_details._replace(metadata=metadata)
        return await method(request_or_iterator, new_details)


def interceptors(*items: Interceptor) -> InterceptorChain:
    """Builds an InterceptorChain from its arguments, in order."""
    return InterceptorChain(items)
