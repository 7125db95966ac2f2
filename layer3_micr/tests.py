"""
Tests for Layer 3 MICR extraction: parser, OCR gateway, extractor.
"""
from unittest import mock

import cv2
import numpy as np
import pytest

from error_handlers import ImageEncodeError, NoCapturedStillError, OCRBackendError
from layer1_auto_capture import CapturedStill
from layer3_micr import (
    NOT_FOUND,
    MICRExtractor,
    MICRFields,
    OcrGateway,
    RecognitionBackend,
    ScanRequest,
    TesseractBackend,
    parse_micr_line,
    validate_aba_routing,
)


class StaticBackend(RecognitionBackend):
    """Backend returning a fixed result, or raising it if it is an exception."""

    def __init__(self, name, result):
        self.name = name
        self.result = result
        self.seen = []

    def recognize(self, image):
        self.seen.append(image)
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


@pytest.fixture
def still(check_frame):
    return CapturedStill(check_frame)


class TestMICRParser:
    """Test MICR line parsing."""

    def test_personal_check(self, sample_micr_line):
        fields = parse_micr_line(sample_micr_line)
        assert fields == MICRFields('124003116', '1062296907', '1103')

    def test_unicode_symbols(self):
        fields = parse_micr_line("⑆124003116⑆ 1062296907⑈ 1103")
        assert fields.routing_number == '124003116'
        assert fields.account_number == '1062296907'
        assert fields.check_number == '1103'

    def test_business_check(self):
        fields = parse_micr_line("C001234C A124003116A 1062296907C")
        assert fields.check_number == '001234'
        assert fields.routing_number == '124003116'
        assert fields.account_number == '1062296907'

    def test_lowercase_and_noise(self):
        fields = parse_micr_line("a124003116a | 1062296907c . 1103\n")
        assert fields == MICRFields('124003116', '1062296907', '1103')

    def test_account_without_check_number(self):
        fields = parse_micr_line("T124003116T 1062296907U")
        assert fields.account_number == '1062296907'
        assert fields.check_number == NOT_FOUND

    @pytest.mark.parametrize("text", ["", None, "1062296907C 1103", "hello world", "A12345A 999C"])
    def test_unparseable_lines_are_not_found(self, text):
        fields = parse_micr_line(text)
        assert fields == MICRFields.not_found()
        assert not fields.found

    def test_to_dict_keys(self):
        assert MICRFields.not_found().to_dict() == {
            'routingNumber': 'Not Found',
            'accountNumber': 'Not Found',
            'checkNumber': 'Not Found',
        }

    @pytest.mark.parametrize("routing,valid", [
        ('124003116', True),
        ('011000015', True),
        ('124003117', False),
        ('12400311', False),
        ('12400311X', False),
        ('', False),
    ])
    def test_aba_checksum(self, routing, valid):
        assert validate_aba_routing(routing) is valid


class TestScanRequest:
    """Test encoded scan requests."""

    def test_decode_png(self, check_frame):
        request = ScanRequest(id="scan-1", image=MICRExtractor.encode(check_frame))
        assert np.array_equal(request.decode(), check_frame)

    def test_decode_garbage_raises(self):
        with pytest.raises(ValueError):
            ScanRequest(id="scan-2", image=b"not an image").decode()


class TestOcrGateway:
    """Test backend dispatch."""

    def test_requires_backend(self):
        with pytest.raises(ValueError):
            OcrGateway([])

    def test_runs_every_backend(self, check_frame):
        first = StaticBackend('first', MICRFields('124003116', NOT_FOUND, NOT_FOUND))
        second = StaticBackend('second', MICRFields.not_found())
        gateway = OcrGateway([first, second])

        request = ScanRequest(id="scan-3", image=MICRExtractor.encode(check_frame))
        results = gateway.scan(request)

        assert gateway.backend_names == ['first', 'second']
        assert results['first'].routing_number == '124003116'
        assert len(first.seen) == 1 and len(second.seen) == 1

    def test_backend_failure_is_wrapped(self, check_frame):
        gateway = OcrGateway([StaticBackend('broken', RuntimeError("engine crashed"))])
        request = ScanRequest(id="scan-4", image=MICRExtractor.encode(check_frame))
        with pytest.raises(OCRBackendError) as exc:
            gateway.scan(request)
        assert exc.value.details['backend'] == 'broken'


class TestTesseractBackend:
    """Test the pytesseract backend with the engine mocked out."""

    def test_recognize_parses_output(self, check_frame, sample_micr_line):
        backend = TesseractBackend()
        with mock.patch('layer3_micr.gateway.pytesseract.image_to_string',
                        return_value=sample_micr_line) as ocr:
            fields = backend.recognize(check_frame)

        assert fields == MICRFields('124003116', '1062296907', '1103')
        prepared = ocr.call_args[0][0]
        # Only the binarized MICR band is sent to Tesseract
        assert prepared.shape == (96, 640)
        assert 'tessedit_char_whitelist=0123456789ABCD' in ocr.call_args[1]['config']

    def test_missing_engine_propagates(self, check_frame):
        with mock.patch('layer3_micr.gateway.pytesseract.image_to_string',
                        side_effect=EnvironmentError("tesseract is not installed")):
            with pytest.raises(EnvironmentError):
                TesseractBackend().recognize(check_frame)


class TestMICRExtractor:
    """Test extraction with not-found fallbacks."""

    def test_success(self, still):
        backend = StaticBackend('tesseract', MICRFields('124003116', '1062296907', '1103'))
        results = MICRExtractor(OcrGateway([backend])).extract(still)
        assert results['tesseract'].check_number == '1103'
        # Working copy is what gets recognized
        assert np.array_equal(backend.seen[0], still.working)

    def test_adjusted_working_copy_is_submitted(self, still):
        backend = StaticBackend('tesseract', MICRFields.not_found())
        still.working[:] = 42
        MICRExtractor(OcrGateway([backend])).extract(still)
        assert (backend.seen[0] == 42).all()

    def test_gateway_failure_gives_not_found_for_every_backend(self, still):
        gateway = mock.Mock()
        gateway.backend_names = ['tesseract', 'opencv']
        gateway.scan.side_effect = ConnectionError("gateway unreachable")

        results = MICRExtractor(gateway).extract(still)
        assert set(results) == {'tesseract', 'opencv'}
        assert all(fields == MICRFields.not_found() for fields in results.values())

    def test_backend_failure_gives_not_found(self, still):
        gateway = OcrGateway([StaticBackend('tesseract', RuntimeError("boom"))])
        results = MICRExtractor(gateway).extract(still)
        assert results == {'tesseract': MICRFields.not_found()}

    def test_missing_backends_are_filled_in(self, still):
        backend = StaticBackend('tesseract', MICRFields('124003116', NOT_FOUND, NOT_FOUND))
        extractor = MICRExtractor(OcrGateway([backend]), backends=['tesseract', 'opencv'])
        results = extractor.extract(still)
        assert results['tesseract'].routing_number == '124003116'
        assert results['opencv'] == MICRFields.not_found()

    def test_encode_failure_gives_not_found(self, still):
        gateway = mock.Mock()
        gateway.backend_names = ['tesseract']
        with mock.patch('layer3_micr.extractor.cv2.imencode', return_value=(False, None)):
            results = MICRExtractor(gateway).extract(still)
        assert results == {'tesseract': MICRFields.not_found()}
        gateway.scan.assert_not_called()

    def test_encode_raises_image_encode_error(self, check_frame):
        with mock.patch('layer3_micr.extractor.cv2.imencode', return_value=(False, None)):
            with pytest.raises(ImageEncodeError):
                MICRExtractor.encode(check_frame)

    def test_requires_still(self):
        gateway = mock.Mock()
        gateway.backend_names = ['tesseract']
        with pytest.raises(NoCapturedStillError):
            MICRExtractor(gateway).extract(None)

    def test_to_dict(self):
        results = {'tesseract': MICRFields('124003116', '1062296907', '1103')}
        assert MICRExtractor.to_dict(results) == {
            'tesseract': {
                'routingNumber': '124003116',
                'accountNumber': '1062296907',
                'checkNumber': '1103',
            }
        }

    def test_png_is_lossless(self, still):
        encoded = MICRExtractor.encode(still.working)
        decoded = cv2.imdecode(np.frombuffer(encoded, dtype=np.uint8), cv2.IMREAD_COLOR)
        assert np.array_equal(decoded, still.working)
