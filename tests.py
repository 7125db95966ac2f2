"""
Tests for Check Scanner Flask application.
"""
import json
import threading
import pytest

import app as app_module


@pytest.fixture
def captured(app):
    """Session that has already captured the check."""
    app_module.engine.run(sleep=lambda _s: None)
    assert app_module.engine.still is not None
    return app_module.engine


class TestHealthEndpoint:
    """Test health check endpoint."""

    def test_health_returns_ok(self, client):
        """Test /health returns OK status."""
        response = client.get('/health')
        assert response.status_code == 200
        data = json.loads(response.data)
        assert data['status'] == 'healthy'
        assert data['service'] == 'check-scanner'


class TestStatusEndpoints:
    """Test service and session status."""

    def test_api_status(self, client):
        """Test /api/status lists backends and endpoints."""
        response = client.get('/api/status')
        data = json.loads(response.data)
        assert data['success'] is True
        assert data['camera_available'] is True
        assert data['ocr_backends'] == ['tesseract']
        assert data['endpoints']['ocr'] == '/ocr'

    def test_detection_status_before_frames(self, client):
        """Test /detection_status with no processed frame."""
        data = json.loads(client.get('/detection_status').data)
        assert data['detection'] == {'detected': False}
        assert data['status']['stable_count'] == 0

    def test_detection_status_after_capture(self, client, captured):
        """Test /detection_status reports the paused session."""
        data = json.loads(client.get('/detection_status').data)
        assert data['status']['state'] == 'paused'
        assert data['status']['has_still'] is True
        assert data['detection']['detected'] is True


class TestCameraEndpoints:
    """Test camera start/stop."""

    def test_start_camera(self, client):
        """Test /start_camera starts streaming."""
        response = client.post('/start_camera')
        assert response.status_code == 200
        data = json.loads(response.data)
        assert data['status']['streaming'] is True
        assert data['status']['capture_zone'] == {'x': 10, 'y': 96, 'width': 620, 'height': 288}

    def test_stop_camera(self, client):
        """Test /stop_camera releases the source."""
        client.post('/start_camera')
        response = client.post('/stop_camera')
        assert response.status_code == 200
        assert not app_module.engine.camera.is_opened()

    def test_video_feed_without_camera(self, client):
        """Test /video_feed needs an open camera."""
        client.post('/stop_camera')
        response = client.get('/video_feed')
        assert response.status_code == 503
        data = json.loads(response.data)
        assert data['error_code'] == 'CAMERA_NOT_INITIALIZED'

    def test_video_feed_streams_until_capture(self, client):
        """Test /video_feed ends with the captured still."""
        client.post('/start_camera')
        response = client.get('/video_feed')
        assert response.status_code == 200
        assert response.mimetype == 'multipart/x-mixed-replace'
        # Six overlay frames plus the captured still
        assert response.data.count(b'--frame') == 7
        assert app_module.engine.still is not None


class TestAdjustEndpoint:
    """Test brightness/contrast adjustment."""

    def test_adjust_without_still(self, client):
        """Test /adjust before a capture."""
        response = client.post('/adjust', json={'brightness': 10, 'contrast': 10})
        assert response.status_code == 409
        data = json.loads(response.data)
        assert data['error_code'] == 'NO_CAPTURED_STILL'

    def test_adjust_requires_json(self, client, captured):
        """Test /adjust rejects a non-JSON body."""
        response = client.post('/adjust', data='brightness=10')
        assert response.status_code == 400

    @pytest.mark.parametrize("body", [
        {'brightness': 101},
        {'contrast': -150},
        {'brightness': 'bright'},
    ])
    def test_adjust_rejects_out_of_range(self, client, captured, body):
        """Test /adjust validates values."""
        response = client.post('/adjust', json=body)
        assert response.status_code == 400
        data = json.loads(response.data)
        assert data['error_code'] == 'INVALID_TONE_PARAMETERS'

    def test_adjust_applies_tone(self, client, captured):
        """Test /adjust changes the working still."""
        response = client.post('/adjust', json={'brightness': -20, 'contrast': 0})
        assert response.status_code == 200
        data = json.loads(response.data)
        assert data['still']['tone'] == {'brightness': -20, 'contrast': 0}
        assert captured.still.working.max() == 235
        assert captured.still.original.max() == 255


class TestOcrEndpoint:
    """Test MICR extraction endpoint."""

    def test_ocr_without_still(self, client):
        """Test /ocr before a capture."""
        response = client.post('/ocr')
        assert response.status_code == 409

    def test_ocr_returns_fields(self, client, captured):
        """Test /ocr returns MICR fields per backend."""
        response = client.post('/ocr')
        assert response.status_code == 200
        data = json.loads(response.data)
        assert data['success'] is True
        assert data['results']['tesseract'] == {
            'routingNumber': '124003116',
            'accountNumber': '1062296907',
            'checkNumber': '1103',
        }
        assert data['timestamp'] == captured.still.timestamp


class TestStillEndpoint:
    """Test captured image download and reset."""

    def test_still_missing(self, client):
        """Test /still.png before a capture."""
        assert client.get('/still.png').status_code == 404

    def test_still_png(self, client, captured):
        """Test /still.png returns the PNG still."""
        response = client.get('/still.png')
        assert response.status_code == 200
        assert response.mimetype == 'image/png'
        assert response.data[:8] == b'\x89PNG\r\n\x1a\n'

    def test_reset_discards_still(self, client, captured):
        """Test /reset resumes streaming."""
        response = client.post('/reset')
        data = json.loads(response.data)
        assert data['status']['streaming'] is True
        assert data['status']['has_still'] is False
        assert client.get('/still.png').status_code == 404

    def test_reset_after_stop_camera_does_not_stream(self, client):
        """Test /reset does not restart a released camera."""
        client.post('/start_camera')
        client.post('/stop_camera')
        response = client.post('/reset')
        data = json.loads(response.data)
        assert data['status']['streaming'] is False
        assert app_module.engine.step() is None

    def test_still_waits_for_session_lock(self, app, captured):
        """Test /still.png does not read the still while a control holds the session."""
        done = threading.Event()
        responses = []

        def fetch():
            responses.append(app.test_client().get('/still.png'))
            done.set()

        with captured.lock:
            worker = threading.Thread(target=fetch)
            worker.start()
            assert not done.wait(0.2)
            captured.reset()

        worker.join(timeout=5)
        assert done.is_set()
        assert responses[0].status_code == 404

    def test_ocr_timestamp_belongs_to_scanned_still(self, client, captured, mock_extractor):
        """Test /ocr reports the still it scanned even if the session resets."""
        scanned = captured.still

        def extract_then_reset(still):
            captured.reset()
            return {'tesseract': mock_extractor.extract.return_value['tesseract']}

        mock_extractor.extract.side_effect = extract_then_reset
        response = client.post('/ocr')
        assert response.status_code == 200
        data = json.loads(response.data)
        assert data['timestamp'] == scanned.timestamp


class TestErrorHandling:
    """Test error handling."""

    def test_404_for_unknown_route(self, client):
        """Test 404 for unknown routes."""
        response = client.get('/nonexistent-route')
        assert response.status_code == 404
