"""
OCR capability and the image -> identifier pipeline.

``TesseractOcr`` is the production engine (pytesseract + Pillow). The engine
only turns pixels into text; deciding whether the text holds an identifier is
``salesbot.intel.identifier``'s job. Engine errors come back as an ``error``
outcome, never as "no identifier".
"""
import io
import threading
import time
from dataclasses import dataclass, replace
from typing import Optional

import pytesseract
from PIL import Image, ImageOps

from salesbot.errors import OcrFailure
from salesbot.intel.identifier import extract_identifier
from salesbot.observability.logging import log
from salesbot.settings import settings

OCR_NO_TEXT = "OCR_NO_TEXT"
OCR_NO_MAC = "OCR_NO_MAC"
OCR_ERROR = "OCR_ERROR"

_WHITELIST = "0123456789ABCDEFabcdef:-._ "
_PRIMARY_CONFIG = f"--psm 6 -c tessedit_char_whitelist={_WHITELIST} -c preserve_interword_spaces=1"
_FALLBACK_CONFIG = "--psm 11"

# Cap on raw OCR text carried into audit events
OCR_SAMPLE_CHARS = 300


@dataclass
class Recognition:
    text: str = ""
    usedFallbackPass: bool = False
    usedRotation: bool = False


@dataclass
class OcrOutcome:
    ok: bool
    identifier: Optional[str] = None
    text: str = ""
    errorType: Optional[str] = None
    details: str = ""
    usedFallbackPass: bool = False
    usedRotation: bool = False

    @property
    def sample(self) -> str:
        return (self.text or "")[:OCR_SAMPLE_CHARS]


class TesseractOcr:
    """
    Pass 1: whitelist restricted to hex/separators (fast, precise).
    Pass 2: unrestricted sparse-text mode when pass 1 reads nothing.
    Pass 3: rotated copies, for photos of TVs taken sideways.
    """

    def __init__(self, lang: Optional[str] = None, tesseract_cmd: Optional[str] = None):
        self.lang = lang or settings.OCR_LANG
        cmd = tesseract_cmd if tesseract_cmd is not None else settings.TESSERACT_CMD
        if cmd:
            pytesseract.pytesseract.tesseract_cmd = cmd

    def _read(self, image: "Image.Image", config: str) -> str:
        return pytesseract.image_to_string(image, lang=self.lang, config=config) or ""

    def recognize(self, image_bytes: bytes) -> Recognition:
        try:
            image = Image.open(io.BytesIO(image_bytes))
            image = ImageOps.exif_transpose(image).convert("L")

            text = self._read(image, _PRIMARY_CONFIG)
            if text.strip():
                return Recognition(text=text)

            text = self._read(image, _FALLBACK_CONFIG)
            if text.strip():
                return Recognition(text=text, usedFallbackPass=True)

            for angle in (90, 270):
                text = self._read(image.rotate(angle, expand=True), _FALLBACK_CONFIG)
                if text.strip():
                    return Recognition(text=text, usedFallbackPass=True, usedRotation=True)
            return Recognition(text="", usedFallbackPass=True, usedRotation=True)
        except (OSError, pytesseract.TesseractError) as e:
            raise OcrFailure(str(e)[:300]) from e


def _recognize_with_watchdog(ocr, image_bytes: bytes, context: dict) -> Recognition:
    soft_timeout = float(settings.OCR_SOFT_TIMEOUT_SEC or 0)
    started = time.monotonic()
    timer = None
    if soft_timeout > 0:
        # Observability only: the recognition keeps running.
        timer = threading.Timer(soft_timeout, lambda: log(event="ocr_slow", thresholdSec=soft_timeout, **context))
        timer.daemon = True
        timer.start()
    try:
        rec = ocr.recognize(image_bytes)
    finally:
        if timer is not None:
            timer.cancel()
    log(
        event="ocr_finished",
        elapsedMs=int((time.monotonic() - started) * 1000),
        usedFallbackPass=rec.usedFallbackPass,
        usedRotation=rec.usedRotation,
        **context,
    )
    return rec


def read_text_from_image(ocr, image_bytes: bytes, **context) -> OcrOutcome:
    """Text-only read (lazer flow). ``ok`` means some text was recognized."""
    try:
        rec = _recognize_with_watchdog(ocr, image_bytes, context)
    except OcrFailure as e:
        return OcrOutcome(ok=False, errorType=OCR_ERROR, details=e.details)
    passes = {"usedFallbackPass": rec.usedFallbackPass, "usedRotation": rec.usedRotation}
    if not (rec.text or "").strip():
        return OcrOutcome(ok=False, errorType=OCR_NO_TEXT, details="no text recognized", **passes)
    return OcrOutcome(ok=True, text=rec.text, **passes)


def read_identifier_from_image(ocr, image_bytes: bytes, **context) -> OcrOutcome:
    outcome = read_text_from_image(ocr, image_bytes, **context)
    if not outcome.ok:
        return outcome

    identifier = extract_identifier(outcome.text)
    if not identifier:
        return replace(outcome, ok=False, errorType=OCR_NO_MAC, details="text recognized without an identifier")
    return replace(outcome, identifier=identifier)
