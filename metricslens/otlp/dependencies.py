from dataclasses import dataclass
from typing import Any

from fastapi import HTTPException, Request
from google.protobuf.json_format import MessageToDict
from google.protobuf.message import DecodeError
from opentelemetry.proto.collector.metrics.v1.metrics_service_pb2 import (
    ExportMetricsServiceRequest,
)

JSON_CONTENT_TYPE = 'application/json'
PROTOBUF_CONTENT_TYPE = 'application/x-protobuf'


@dataclass(frozen=True)
class OTLPUpload:
    """A request body ready for the parser.

    JSON bodies are passed through undecoded; protobuf bodies arrive as the
    dict produced by ``MessageToDict``.
    """

    size: int
    body: bytes | None = None
    payload: dict[str, Any] | None = None


def decode_protobuf_metrics(body: bytes) -> dict[str, Any]:
    otlp_request = ExportMetricsServiceRequest()
    otlp_request.ParseFromString(body)
    payload = MessageToDict(
        otlp_request,
        use_integers_for_enums=False,
        preserving_proto_field_name=True,
    )
    # an export with no metrics serializes to an empty message
    payload.setdefault('resource_metrics', [])
    return payload


async def read_otlp_upload(request: Request) -> OTLPUpload:
    content_type = request.headers.get('content-type', '').lower()
    body = await request.body()

    if PROTOBUF_CONTENT_TYPE in content_type:
        try:
            payload = decode_protobuf_metrics(body)
        except DecodeError as e:
            raise HTTPException(
                status_code=400, detail=f'Failed to parse OTLP/HTTP+Protobuf: {e}'
            ) from e
        return OTLPUpload(size=len(body), payload=payload)

    if JSON_CONTENT_TYPE in content_type:
        return OTLPUpload(size=len(body), body=body)

    raise HTTPException(
        status_code=415, detail=f'Unsupported Content-Type: {content_type}'
    )
