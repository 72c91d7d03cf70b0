# © Copyright 2025-2026, Query.Farm LLC - https://query.farm
# SPDX-License-Identifier: Apache-2.0

"""Asynchronous HTTP remote-procedure-call client.

Encodes named arguments and file attachments as a query string,
url-encoded body or multipart body, dispatches the request without
blocking the caller, and decodes the response into a generic value tree
delivered exactly once to a callback.
"""

import contextlib
import logging

from httprpc.arguments import FileReference, WirePair, flatten, format_scalar
from httprpc.auth import Authentication, BasicAuthentication, BearerAuthentication, NoAuthentication
from httprpc.decoders import (
    ContentType,
    Decoder,
    DecoderRegistry,
    decode_arrow_stream,
    decode_bytes,
    decode_json,
    decode_text,
    default_registry,
    parse_content_type,
)
from httprpc.errors import (
    CancellationError,
    DecodeError,
    EncodingError,
    ErrorKind,
    HTTPStatusError,
    HttpRpcError,
    NetworkError,
)
from httprpc.proxy import (
    InvocationHandle,
    InvocationHook,
    InvocationState,
    ProxyConfig,
    ResultCallback,
    WebServiceProxy,
)
from httprpc.request import EncodedRequest, build_request, percent_encode
from httprpc.transport import HttpxTransport, ResponseEnvelope, Transport
from httprpc.utils import value_at

# OpenTelemetry instrumentation (optional, requires `pip install httprpc[otel]`)
with contextlib.suppress(ImportError):
    from httprpc.otel import OtelConfig, instrument_proxy

__all__ = [
    # Proxy
    "WebServiceProxy",
    "ProxyConfig",
    "InvocationHandle",
    "InvocationHook",
    "InvocationState",
    "ResultCallback",
    # Arguments
    "FileReference",
    "WirePair",
    "flatten",
    "format_scalar",
    # Requests
    "EncodedRequest",
    "build_request",
    "percent_encode",
    # Authentication
    "Authentication",
    "NoAuthentication",
    "BasicAuthentication",
    "BearerAuthentication",
    # Decoding
    "ContentType",
    "Decoder",
    "DecoderRegistry",
    "decode_arrow_stream",
    "decode_bytes",
    "decode_json",
    "decode_text",
    "default_registry",
    "parse_content_type",
    "value_at",
    # Transport
    "Transport",
    "HttpxTransport",
    "ResponseEnvelope",
    # Errors
    "ErrorKind",
    "HttpRpcError",
    "EncodingError",
    "NetworkError",
    "HTTPStatusError",
    "DecodeError",
    "CancellationError",
]

# Conditionally include optional names only when actually imported
if "OtelConfig" in dir():
    __all__ += ["OtelConfig", "instrument_proxy"]

# Attach NullHandler to the root logger so library users don't get
# "No handler found" warnings.  Must come after all imports so the
# logger hierarchy is fully populated.
logging.getLogger("httprpc").addHandler(logging.NullHandler())
