"""
Check Scanner Web Application
Thin coordinator for the layered check scanning system.

Provides REST API for:
- Camera start/stop and live preview with detection overlay
- Session reset and brightness/contrast correction of the captured check
- MICR extraction (routing, account, check number) from the captured check
"""
from flask import Flask, Response, jsonify, request
from flask_cors import CORS
import cv2
import logging
import os

# Import layers
from layer1_auto_capture import AutoCaptureEngine, CaptureConfig
from layer3_micr import MICRExtractor

# Import error handling
from error_handlers import (
    ScannerError,
    CameraError,
    ProcessingError,
    NoCapturedStillError,
    handle_error
)

# Setup logging
logging.basicConfig(
    level=os.environ.get('LOG_LEVEL', 'INFO'),
    format='%(asctime)s - %(levelname)s - %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger(__name__)

app = Flask(__name__)

# Enable CORS for cross-origin requests from the operator UI
CORS(app, origins=os.environ.get('CORS_ORIGINS', '*').split(','))

# Configuration
HOST = os.environ.get('HOST', '0.0.0.0')
PORT = int(os.environ.get('PORT', 5000))
DEBUG = os.environ.get('DEBUG', '0') == '1'

# One capture session per process
logger.info("Starting application initialization")
engine = AutoCaptureEngine(CaptureConfig.from_env())


def _error_response(error, status):
    return jsonify(handle_error(error)), status


# ============================================================================
# Flask Routes - Operator Controls
# ============================================================================

@app.route('/start_camera', methods=['POST'])
def start_camera():
    """Open the camera and start streaming"""
    logger.info("Start camera request received")

    try:
        engine.initialize()
        engine.start()
        return jsonify({"success": True, "status": engine.status()})
    except CameraError as e:
        return _error_response(e, 503)
    except Exception as e:
        return _error_response(e, 500)


@app.route('/stop_camera', methods=['POST'])
def stop_camera():
    """Stop streaming and release the camera"""
    logger.info("Stop camera request received")
    engine.release()
    return jsonify({"success": True})


@app.route('/reset', methods=['POST'])
def reset():
    """Discard the captured check and return detection to streaming"""
    logger.info("Reset request received")
    engine.reset()
    return jsonify({"success": True, "status": engine.status()})


@app.route('/adjust', methods=['POST'])
def adjust():
    """
    Apply brightness/contrast to the captured check.

    Request:
        {"brightness": -100..100, "contrast": -100..100}
    """
    data = request.get_json(silent=True)
    if data is None:
        return jsonify({
            "success": False,
            "error": "Expected a JSON body",
            "error_code": "INVALID_JSON"
        }), 400

    brightness = data.get('brightness', 0)
    contrast = data.get('contrast', 0)

    try:
        engine.adjust_tone(brightness=brightness, contrast=contrast)
    except NoCapturedStillError as e:
        return _error_response(e, 409)
    except ProcessingError as e:
        return _error_response(e, 400)

    return jsonify({"success": True, "still": engine.status()['still']})


@app.route('/ocr', methods=['POST'])
def ocr():
    """Run MICR extraction on the captured check"""
    logger.info("=" * 60)
    logger.info("OCR request received")

    try:
        with engine.lock:
            still = engine.still
            results = engine.extract_micr()
    except NoCapturedStillError as e:
        return _error_response(e, 409)
    except ScannerError as e:
        return _error_response(e, 422)

    logger.info("=" * 60)
    return jsonify({
        "success": True,
        "results": MICRExtractor.to_dict(results),
        "timestamp": still.timestamp
    })


@app.route('/still.png', methods=['GET'])
def still_image():
    """Current (tone-adjusted) captured check as PNG"""
    with engine.lock:
        still = engine.still
        if still is None:
            return _error_response(NoCapturedStillError(), 404)
        ok, buffer = cv2.imencode('.png', still.working)

    if not ok:
        return jsonify({
            "success": False,
            "error": "Could not encode captured image",
            "error_code": "IMAGE_ENCODE_FAILED"
        }), 500
    return Response(buffer.tobytes(), mimetype='image/png')


@app.route('/video_feed')
def video_feed():
    """Video streaming route with live check detection overlay"""
    logger.info("Video feed requested")

    try:
        frames = engine.frames()
    except CameraError as e:
        return _error_response(e, 503)

    def generate():
        for result in frames:
            if result.frame is None:
                continue

            progress = engine.gate.progress if engine.gate else 0.0
            overlay = engine.processor.draw_overlay(
                result.frame,
                result.candidate,
                engine.gate.zone if engine.gate else None,
                progress
            )
            ok, buffer = cv2.imencode('.jpg', overlay)
            if not ok:
                continue
            yield (b'--frame\r\n'
                   b'Content-Type: image/jpeg\r\n\r\n' + buffer.tobytes() + b'\r\n')

        # Session paused on capture: show the still as the last frame
        with engine.lock:
            still = engine.still
            ok, buffer = cv2.imencode('.jpg', still.working) if still is not None else (False, None)
        if ok:
            yield (b'--frame\r\n'
                   b'Content-Type: image/jpeg\r\n\r\n' + buffer.tobytes() + b'\r\n')

    return Response(generate(), mimetype='multipart/x-mixed-replace; boundary=frame')


@app.route('/detection_status', methods=['GET'])
def detection_status():
    """Current detection/stability status (for UI progress indicators)"""
    last = engine.last_result
    return jsonify({
        "success": True,
        "status": engine.status(),
        "detection": last.to_dict() if last else {"detected": False}
    })


# ============================================================================
# API Endpoints for Service Discovery
# ============================================================================

@app.route("/health", methods=["GET"])
def health_check():
    """Health check endpoint for service discovery and load balancers"""
    return jsonify({
        "status": "healthy",
        "service": "check-scanner",
        "version": "1.0.0"
    })


@app.route("/api/status", methods=["GET"])
def api_status():
    """Get service status and capabilities"""
    return jsonify({
        "success": True,
        "camera_available": engine.camera is not None and engine.camera.is_opened(),
        "ocr_backends": engine.extractor.backends,
        "session": engine.status(),
        "endpoints": {
            "health": "/health",
            "start_camera": "/start_camera",
            "stop_camera": "/stop_camera",
            "reset": "/reset",
            "adjust": "/adjust",
            "ocr": "/ocr",
            "still": "/still.png",
            "video_feed": "/video_feed",
            "detection_status": "/detection_status"
        }
    })


# ============================================================================
# Main Entry Point
# ============================================================================

if __name__ == '__main__':
    logger.info(f"Flask server starting on {HOST}:{PORT}")
    app.run(host=HOST, port=PORT, debug=DEBUG, threaded=True)
