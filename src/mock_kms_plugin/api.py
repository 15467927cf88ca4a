"""The ``v1beta1`` KMS plugin wire contract.

Equivalent to the published ``api.proto``::

    service KeyManagementService {
        rpc Version(VersionRequest) returns (VersionResponse) {}
        rpc Decrypt(DecryptRequest) returns (DecryptResponse) {}
        rpc Encrypt(EncryptRequest) returns (EncryptResponse) {}
    }

The file descriptor is assembled at import time and message classes come
straight from the protobuf runtime, so no ``protoc`` step is needed.
"""

from __future__ import annotations

from typing import Any, Callable

import grpc
from google.protobuf import descriptor_pb2, descriptor_pool, message_factory

API_VERSION = "v1beta1"
RUNTIME_NAME = "mock-kms-plugin"
RUNTIME_VERSION = "0.0.1"

SERVICE_NAME = f"{API_VERSION}.KeyManagementService"

_STRING = descriptor_pb2.FieldDescriptorProto.TYPE_STRING
_BYTES = descriptor_pb2.FieldDescriptorProto.TYPE_BYTES

# message name -> ((field name, field number, type), ...)
_MESSAGES: dict[str, tuple[tuple[str, int, int], ...]] = {
    "VersionRequest": (("version", 1, _STRING),),
    "VersionResponse": (
        ("version", 1, _STRING),
        ("runtime_name", 2, _STRING),
        ("runtime_version", 3, _STRING),
    ),
    "DecryptRequest": (("version", 1, _STRING), ("cipher", 2, _BYTES)),
    "DecryptResponse": (("plain", 1, _BYTES),),
    "EncryptRequest": (("version", 1, _STRING), ("plain", 2, _BYTES)),
    "EncryptResponse": (("cipher", 1, _BYTES),),
}

# rpc name -> (request message, response message)
_METHODS: dict[str, tuple[str, str]] = {
    "Version": ("VersionRequest", "VersionResponse"),
    "Decrypt": ("DecryptRequest", "DecryptResponse"),
    "Encrypt": ("EncryptRequest", "EncryptResponse"),
}


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def _build_file_descriptor() -> descriptor_pb2.FileDescriptorProto:
    file_proto = descriptor_pb2.FileDescriptorProto(
        name=f"{API_VERSION}/api.proto",
        package=API_VERSION,
        syntax="proto3",
    )
    for message_name, fields in _MESSAGES.items():
        message = file_proto.message_type.add(name=message_name)
        for field_name, number, field_type in fields:
            message.field.add(
                name=field_name,
                json_name=_camel(field_name),
                number=number,
                type=field_type,
                label=descriptor_pb2.FieldDescriptorProto.LABEL_OPTIONAL,
            )

    service = file_proto.service.add(name="KeyManagementService")
    for method_name, (request_name, response_name) in _METHODS.items():
        service.method.add(
            name=method_name,
            input_type=f".{API_VERSION}.{request_name}",
            output_type=f".{API_VERSION}.{response_name}",
        )
    return file_proto


# Private pool so the definitions never clash with anything in the default pool.
_POOL = descriptor_pool.DescriptorPool()
DESCRIPTOR = _POOL.AddSerializedFile(_build_file_descriptor().SerializeToString())


def _message_class(name: str) -> type:
    return message_factory.GetMessageClass(_POOL.FindMessageTypeByName(f"{API_VERSION}.{name}"))


VersionRequest = _message_class("VersionRequest")
VersionResponse = _message_class("VersionResponse")
DecryptRequest = _message_class("DecryptRequest")
DecryptResponse = _message_class("DecryptResponse")
EncryptRequest = _message_class("EncryptRequest")
EncryptResponse = _message_class("EncryptResponse")

_CLASSES = {
    "VersionRequest": VersionRequest,
    "VersionResponse": VersionResponse,
    "DecryptRequest": DecryptRequest,
    "DecryptResponse": DecryptResponse,
    "EncryptRequest": EncryptRequest,
    "EncryptResponse": EncryptResponse,
}


def method_path(method_name: str) -> str:
    """Full gRPC path, e.g. ``/v1beta1.KeyManagementService/Encrypt``."""
    return f"/{SERVICE_NAME}/{method_name}"


def add_key_management_service_to_server(servicer: Any, server: grpc.Server | grpc.aio.Server) -> None:
    """Register ``servicer.Version/Decrypt/Encrypt`` as unary handlers on ``server``.

    Handlers may be plain functions (``grpc.server``) or coroutines (``grpc.aio.server``).
    """
    handlers = {}
    for method_name, (request_name, response_name) in _METHODS.items():
        handlers[method_name] = grpc.unary_unary_rpc_method_handler(
            getattr(servicer, method_name),
            request_deserializer=_CLASSES[request_name].FromString,
            response_serializer=_CLASSES[response_name].SerializeToString,
        )
    server.add_generic_rpc_handlers(
        (grpc.method_handlers_generic_handler(SERVICE_NAME, handlers),)
    )


class KeyManagementServiceStub:
    """Client-side callables for the three KMS plugin RPCs."""

    Version: Callable[..., Any]
    Decrypt: Callable[..., Any]
    Encrypt: Callable[..., Any]

    def __init__(self, channel: grpc.Channel) -> None:
        for method_name, (request_name, response_name) in _METHODS.items():
            callable_ = channel.unary_unary(
                method_path(method_name),
                request_serializer=_CLASSES[request_name].SerializeToString,
                response_deserializer=_CLASSES[response_name].FromString,
            )
            setattr(self, method_name, callable_)
