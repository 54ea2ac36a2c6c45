"""Clients for the Azure content moderation and image analysis (OCR) services."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

import requests

__all__ = [
    "CONTENT_MODERATOR_PATH",
    "OCR_PATH",
    "AzureError",
    "ResponseError",
    "AzureClient",
    "ModeratorResult",
    "Moderator",
    "Point",
    "OcrWord",
    "OcrLine",
    "OcrBlock",
    "OcrResult",
    "Ocr",
]

CONTENT_MODERATOR_PATH = "/contentmoderator/moderate/v1.0/ProcessImage/Evaluate"
OCR_PATH = "/computervision/imageanalysis:analyze"

_KEY_HEADER = "Ocp-Apim-Subscription-Key"
_IMAGE_TYPE = "image/jpeg"


class AzureError(Exception):
    """A request to an Azure service failed or returned an error."""


def _mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def _list(value: Any) -> List[Any]:
    return value if isinstance(value, list) else []


@dataclass
class ResponseError:
    """The ``error`` object that Azure embeds in its responses."""

    code: str = ""
    message: str = ""

    @classmethod
    def from_json(cls, data: Mapping[str, Any]) -> "ResponseError":
        error = _mapping(data.get("error"))
        return cls(
            code=str(error.get("code") or ""), message=str(error.get("message") or "")
        )

    def has_error(self) -> bool:
        """True when the code is empty or "0", i.e. the response carries no error."""
        return self.code in ("", "0")

    def to_error(self) -> Optional[AzureError]:
        """Return the error as an exception, or None when there is none."""
        if self.has_error():
            return None
        return AzureError(f"azure error, code = {self.code}, msg = {self.message}")


class AzureClient:
    """Base client: an endpoint, a subscription key and the service path."""

    def __init__(
        self,
        endpoint: str,
        api_key: str,
        path: str,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.endpoint = endpoint
        self.api_key = api_key
        self.path = path
        self.session = session if session is not None else requests.Session()

    @property
    def url(self) -> str:
        return f"{self.endpoint}{self.path}"

    def _post_image(
        self, path: str, params: Optional[Dict[str, str]] = None
    ) -> Mapping[str, Any]:
        headers = {_KEY_HEADER: self.api_key, "Content-Type": _IMAGE_TYPE}
        with open(path, "rb") as body:
            resp = self.session.post(self.url, data=body, params=params, headers=headers)
        with resp:
            if resp.status_code != 200:
                raise AzureError(
                    f"status code: {resp.status_code}, error body: {resp.text}"
                )
            try:
                data = resp.json()
            except ValueError as exc:
                raise AzureError(f"invalid response body: {exc}") from exc
        if not isinstance(data, Mapping):
            raise AzureError("invalid response body: not an object")
        return data


@dataclass
class ModeratorResult:
    error: ResponseError = field(default_factory=ResponseError)
    adult_classification_score: float = 0.0
    is_image_adult_classified: bool = False
    racy_classification_score: float = 0.0
    is_image_racy_classified: bool = False
    result: bool = False
    advanced_info: List[Any] = field(default_factory=list)
    status_code: int = 0
    status_description: str = ""
    status_exception: Any = None
    tracking_id: str = ""

    @classmethod
    def from_json(cls, data: Mapping[str, Any]) -> "ModeratorResult":
        status = _mapping(data.get("Status"))
        return cls(
            error=ResponseError.from_json(data),
            adult_classification_score=float(data.get("AdultClassificationScore") or 0),
            is_image_adult_classified=bool(data.get("IsImageAdultClassified", False)),
            racy_classification_score=float(data.get("RacyClassificationScore") or 0),
            is_image_racy_classified=bool(data.get("IsImageRacyClassified", False)),
            result=bool(data.get("Result", False)),
            advanced_info=_list(data.get("AdvancedInfo")),
            status_code=int(status.get("Code") or 0),
            status_description=str(status.get("Description") or ""),
            status_exception=status.get("Exception"),
            tracking_id=str(data.get("TrackingId") or ""),
        )


class Moderator(AzureClient):
    """Image moderation client."""

    def __init__(
        self, endpoint: str, api_key: str, session: Optional[requests.Session] = None
    ) -> None:
        super().__init__(endpoint, api_key, CONTENT_MODERATOR_PATH, session)

    def eval_file(self, path: str) -> ModeratorResult:
        """Upload an image file and return its moderation scores."""
        return ModeratorResult.from_json(self._post_image(path))


@dataclass
class Point:
    x: int = 0
    y: int = 0

    @classmethod
    def from_json(cls, data: Any) -> "Point":
        data = _mapping(data)
        return cls(x=int(data.get("x") or 0), y=int(data.get("y") or 0))


def _polygon(data: Mapping[str, Any]) -> List[Point]:
    return [Point.from_json(p) for p in _list(data.get("boundingPolygon"))]


@dataclass
class OcrWord:
    text: str = ""
    bounding_polygon: List[Point] = field(default_factory=list)
    confidence: float = 0.0

    @classmethod
    def from_json(cls, data: Any) -> "OcrWord":
        data = _mapping(data)
        return cls(
            text=str(data.get("text") or ""),
            bounding_polygon=_polygon(data),
            confidence=float(data.get("confidence") or 0),
        )


@dataclass
class OcrLine:
    text: str = ""
    bounding_polygon: List[Point] = field(default_factory=list)
    words: List[OcrWord] = field(default_factory=list)

    @classmethod
    def from_json(cls, data: Any) -> "OcrLine":
        data = _mapping(data)
        return cls(
            text=str(data.get("text") or ""),
            bounding_polygon=_polygon(data),
            words=[OcrWord.from_json(w) for w in _list(data.get("words"))],
        )


@dataclass
class OcrBlock:
    lines: List[OcrLine] = field(default_factory=list)

    @classmethod
    def from_json(cls, data: Any) -> "OcrBlock":
        data = _mapping(data)
        return cls(lines=[OcrLine.from_json(x) for x in _list(data.get("lines"))])


@dataclass
class OcrResult:
    error: ResponseError = field(default_factory=ResponseError)
    model_version: str = ""
    width: int = 0
    height: int = 0
    blocks: List[OcrBlock] = field(default_factory=list)

    @classmethod
    def from_json(cls, data: Mapping[str, Any]) -> "OcrResult":
        metadata = _mapping(data.get("metadata"))
        read = _mapping(data.get("readResult"))
        return cls(
            error=ResponseError.from_json(data),
            model_version=str(data.get("modelVersion") or ""),
            width=int(metadata.get("width") or 0),
            height=int(metadata.get("height") or 0),
            blocks=[OcrBlock.from_json(b) for b in _list(read.get("blocks"))],
        )

    def text(self) -> str:
        """All recognised lines, one per row, with blocks separated by blank lines."""
        return "".join(
            "".join(line.text + "\n" for line in block.lines) + "\n\n"
            for block in self.blocks
        )


class Ocr(AzureClient):
    """Image analysis client used for text recognition."""

    def __init__(
        self,
        endpoint: str,
        api_key: str,
        api_ver: str = "",
        language: str = "",
        features: str = "",
        session: Optional[requests.Session] = None,
    ) -> None:
        super().__init__(endpoint, api_key, OCR_PATH, session)
        self.api_ver = api_ver
        self.language = language
        self.features = features

    def ocr_file(self, path: str) -> OcrResult:
        """Upload an image file and return the recognised text layout."""
        params = {"api-version": self.api_ver}
        if self.features:
            params["features"] = self.features
        if self.language:
            params["language"] = self.language
        return OcrResult.from_json(self._post_image(path, params))