from unittest.mock import MagicMock

import pytest
import requests

from menu_helper.images.config import ImageSearchConfig
from menu_helper.images.google_search import (
    GoogleImageSearch,
    ImageQuotaExceededError,
    ImageSearchError,
)
from menu_helper.vision.config import VisionConfig
from menu_helper.vision.ocr import GoogleVisionOCR, OCRError

from .fakes import PNG_BYTES


def _response(status: int, body=None) -> MagicMock:
    response = MagicMock()
    response.status_code = status
    response.ok = status < 400
    response.json.return_value = body if body is not None else {}
    if status >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(f"HTTP {status}")
    return response


def test_image_search_parses_items():
    session = MagicMock()
    session.get.return_value = _response(200, {"items": [
        {"link": "https://a.jpg", "title": "A", "image": {"thumbnailLink": "https://a-t.jpg"}},
        {"title": "no link"},
    ]})
    search = GoogleImageSearch(ImageSearchConfig(api_key="k", cx="c"), session=session)

    results = search.search("Pho food dish photo", 3)

    assert len(results) == 1
    assert results[0].link == "https://a.jpg"
    assert results[0].thumbnail == "https://a-t.jpg"
    params = session.get.call_args.kwargs["params"]
    assert params["searchType"] == "image"
    assert params["safe"] == "active"
    assert params["num"] == 3


@pytest.mark.parametrize(
    "status, body",
    [
        (429, {}),
        (403, {"error": {"errors": [{"reason": "dailyLimitExceeded"}]}}),
    ],
)
def test_image_search_quota_signals(status, body):
    session = MagicMock()
    session.get.return_value = _response(status, body)
    search = GoogleImageSearch(ImageSearchConfig(api_key="k", cx="c"), session=session)
    with pytest.raises(ImageQuotaExceededError):
        search.search("Pho", 3)


def test_image_search_other_errors():
    session = MagicMock()
    session.get.return_value = _response(403, {"error": {"errors": [{"reason": "forbidden"}]}})
    search = GoogleImageSearch(ImageSearchConfig(api_key="k", cx="c"), session=session)
    with pytest.raises(ImageSearchError) as excinfo:
        search.search("Pho", 3)
    assert not isinstance(excinfo.value, ImageQuotaExceededError)

    session.get.side_effect = requests.ConnectionError("offline")
    with pytest.raises(ImageSearchError):
        search.search("Pho", 3)


def test_ocr_reads_text_and_labels():
    session = MagicMock()
    session.post.return_value = _response(200, {"responses": [{
        "fullTextAnnotation": {"text": "Pad Thai\nGreen Curry"},
        "labelAnnotations": [{"description": "Menu", "score": 0.93}],
    }]})
    ocr = GoogleVisionOCR(VisionConfig(ocr_api_key="k"), session=session)

    result = ocr.annotate(PNG_BYTES)

    assert result.text == "Pad Thai\nGreen Curry"
    assert result.is_menu
    features = session.post.call_args.kwargs["json"]["requests"][0]["features"]
    assert {"type": "DOCUMENT_TEXT_DETECTION"} in features


def test_ocr_api_error_raises():
    session = MagicMock()
    session.post.return_value = _response(200, {"responses": [{"error": {"message": "bad image"}}]})
    ocr = GoogleVisionOCR(VisionConfig(ocr_api_key="k"), session=session)
    with pytest.raises(OCRError):
        ocr.annotate(PNG_BYTES)
