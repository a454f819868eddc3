"""
Parsers for CAS 2.0 protocol responses.

Both parsers are pure functions over the raw response body. A protocol level
failure (authenticationFailure, proxyFailure, unexpected or unparseable body)
comes back as a ValidationFailure value; only MissingPGT is raised, because it
signals a deployment problem rather than a bad credential.
"""
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Union
from xml.parsers.expat import ExpatError

import xmltodict

from ..exceptions import (
    AuthenticationFailure,
    MissingPGT,
    RequestInvalidError,
    ServiceInvalidError,
    TicketInvalidError,
)

CAS_PREFIX = "cas:"


class FailureCode(str, Enum):
    INVALID_REQUEST = "INVALID_REQUEST"
    INVALID_TICKET = "INVALID_TICKET"
    INVALID_SERVICE = "INVALID_SERVICE"
    AUTHENTICATION_FAILURE = "AUTHENTICATION_FAILURE"

    @classmethod
    def from_code(cls, code: Optional[str]) -> "FailureCode":
        try:
            return cls(code)
        except ValueError:
            return cls.AUTHENTICATION_FAILURE


_FAILURE_EXCEPTIONS = {
    FailureCode.INVALID_REQUEST: RequestInvalidError,
    FailureCode.INVALID_TICKET: TicketInvalidError,
    FailureCode.INVALID_SERVICE: ServiceInvalidError,
    FailureCode.AUTHENTICATION_FAILURE: AuthenticationFailure,
}


@dataclass(frozen=True)
class ValidationFailure:
    code: FailureCode
    message: str = ""

    @property
    def ok(self) -> bool:
        return False

    def exception(self) -> AuthenticationFailure:
        return _FAILURE_EXCEPTIONS[self.code](self.message)


@dataclass(frozen=True)
class ServiceValidationSuccess:
    user: str
    attributes: Dict[str, Any] = field(default_factory=dict)
    pgt_iou: Optional[str] = None

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class ProxyValidationSuccess:
    proxy_ticket: str

    @property
    def ok(self) -> bool:
        return True


ServiceValidationResult = Union[ServiceValidationSuccess, ValidationFailure]
ProxyValidationResult = Union[ProxyValidationSuccess, ValidationFailure]


def local_name(name: str) -> str:
    return name.split(":", 1)[-1]


def element_text(node) -> str:
    """
    Text content of an xmltodict node. Repeated elements yield the first one.
    """
    if node is None:
        return ""
    if isinstance(node, str):
        return node
    if isinstance(node, list):
        return element_text(node[0]) if node else ""
    if isinstance(node, dict):
        return node.get("#text", "") or ""
    return str(node)


def _children(node):
    if not isinstance(node, dict):
        return []
    return [(k, v) for k, v in node.items() if not k.startswith(("@", "#"))]


def _find_anywhere(node, name: str):
    """
    Depth-first search for an element below `node`. Returns a (found, value)
    pair because empty elements parse to None.
    """
    if isinstance(node, list):
        for item in node:
            found, value = _find_anywhere(item, name)
            if found:
                return found, value
        return False, None

    for key, value in _children(node):
        if key == name:
            return True, value
        found, inner = _find_anywhere(value, name)
        if found:
            return True, inner
    return False, None


def _parse_document(content) -> Optional[dict]:
    document = xmltodict.parse(content)
    response = document.get(CAS_PREFIX + "serviceResponse")
    if response is None:
        return None
    return response if isinstance(response, dict) else {}


def _failure(response: dict, element: str) -> ValidationFailure:
    if element not in response:
        return ValidationFailure(FailureCode.AUTHENTICATION_FAILURE, "")
    node = response[element]
    code = node.get("@code") if isinstance(node, dict) else None
    return ValidationFailure(FailureCode.from_code(code), element_text(node).strip())


# Restricted decoder for the legacy attribute encoding. Only scalars and flat
# sequences of scalars are produced; mappings and nested sequences stay text.

_INT_RE = re.compile(r"\A[-+]?\d+\Z")
_FLOAT_RE = re.compile(r"\A[-+]?(\d+\.\d*|\.\d+|\d+)([eE][-+]?\d+)?\Z")
_TRUE = {"true"}
_FALSE = {"false"}
_NULL = {"", "~", "null"}


def _decode_atom(text: str):
    text = text.strip()
    lowered = text.lower()
    if lowered in _NULL:
        return None
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    if _INT_RE.match(text):
        return int(text)
    if _FLOAT_RE.match(text):
        return float(text)
    if len(text) >= 2 and text[0] == text[-1] and text[0] in "'\"":
        inner = text[1:-1]
        if text[0] == '"':
            return inner.replace('\\"', '"').replace("\\\\", "\\")
        return inner.replace("''", "'")
    return text


def _split_flow_sequence(inner: str):
    items, current, quote = [], [], None
    for char in inner:
        if quote:
            current.append(char)
            if char == quote:
                quote = None
        elif char in "'\"":
            quote = char
            current.append(char)
        elif char == ",":
            items.append("".join(current))
            current = []
        else:
            current.append(char)
    if current or items:
        items.append("".join(current))
    return items


def decode_scalar(text: str):
    text = (text or "").strip()
    if text.startswith("---"):
        text = text[3:].strip()
    if text.endswith("\n...") or text == "...":
        text = text[:-3].strip()

    if text.startswith("[") and text.endswith("]"):
        items = _split_flow_sequence(text[1:-1])
        if not any(item.strip().startswith(("[", "{")) for item in items):
            return [_decode_atom(item) for item in items if item.strip()]
        return text

    lines = [line.strip() for line in text.splitlines() if line.strip()]
    if lines and all(line == "-" or line.startswith("- ") for line in lines):
        items = [line[1:] for line in lines]
        if not any(item.strip().startswith(("-", "[", "{")) for item in items):
            return [_decode_atom(item) for item in items]
        return text

    return _decode_atom(text)


def _jasig_attributes(node) -> Dict[str, Any]:
    attributes = {}
    for key, value in _children(node):
        if isinstance(value, list):
            attributes[local_name(key)] = [element_text(v) for v in value]
        else:
            attributes[local_name(key)] = element_text(value)
    return attributes


def _legacy_attributes(node) -> Dict[str, Any]:
    attributes = {}
    for key, value in _children(node):
        if ":" in key:
            continue
        if isinstance(value, list):
            attributes[key] = [decode_scalar(element_text(v)) for v in value]
        else:
            attributes[key] = decode_scalar(element_text(value))
    return attributes


def extract_attributes(success: dict) -> Dict[str, Any]:
    """
    Extra attributes of an authenticationSuccess element. A cas:attributes
    wrapper wins; without one, every non-namespaced child is an attribute.
    """
    wrapper = CAS_PREFIX + "attributes"
    if wrapper in success:
        return _jasig_attributes(success[wrapper])
    return _legacy_attributes(success)


def parse_service_response(content, pgt_requested: bool = False) -> ServiceValidationResult:
    """
    Parse the body of a /serviceValidate response.

    When `pgt_requested` is set, a success without a proxyGrantingTicket
    raises MissingPGT.
    """
    try:
        response = _parse_document(content)
    except (ExpatError, ValueError) as e:
        return ValidationFailure(FailureCode.AUTHENTICATION_FAILURE, f"Unparseable CAS response: {e}")
    if response is None:
        return ValidationFailure(FailureCode.AUTHENTICATION_FAILURE, "")

    element = CAS_PREFIX + "authenticationSuccess"
    if element not in response:
        return _failure(response, CAS_PREFIX + "authenticationFailure")

    success = response[element] if isinstance(response[element], dict) else {}
    user = element_text(success.get(CAS_PREFIX + "user")).strip()
    if not user:
        return ValidationFailure(FailureCode.AUTHENTICATION_FAILURE, "CAS response carries no user")

    pgt_iou = None
    found, node = _find_anywhere(response, CAS_PREFIX + "proxyGrantingTicket")
    if found:
        pgt_iou = element_text(node).strip()
    elif pgt_requested:
        raise MissingPGT("CAS was probably unable to connect to the pgt_callback_url")

    return ServiceValidationSuccess(user=user, attributes=extract_attributes(success), pgt_iou=pgt_iou)


def parse_proxy_response(content) -> ProxyValidationResult:
    """
    Parse the body of a /proxy response.
    """
    try:
        response = _parse_document(content)
    except (ExpatError, ValueError) as e:
        return ValidationFailure(FailureCode.AUTHENTICATION_FAILURE, f"Unparseable CAS response: {e}")
    if response is None:
        return ValidationFailure(FailureCode.AUTHENTICATION_FAILURE, "")

    if CAS_PREFIX + "proxySuccess" not in response:
        return _failure(response, CAS_PREFIX + "proxyFailure")

    _, node = _find_anywhere(response, CAS_PREFIX + "proxyTicket")
    return ProxyValidationSuccess(proxy_ticket=element_text(node).strip())
