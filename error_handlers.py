"""
Error Handling System
Provides consistent error responses across all layers
"""
import logging

logger = logging.getLogger(__name__)


class ScannerError(Exception):
    """Base exception for scanner errors"""
    def __init__(self, message, error_code, details=None):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self):
        """Convert error to JSON-serializable dict"""
        return {
            "success": False,
            "error": self.message,
            "error_code": self.error_code,
            "details": self.details
        }


# Layer 1 Errors - Camera
class CameraError(ScannerError):
    """Camera-related errors"""
    pass


class CameraNotFoundError(CameraError):
    """Camera device not found"""
    def __init__(self, camera_index):
        super().__init__(
            message=f"Camera not found at index {camera_index}",
            error_code="CAMERA_NOT_FOUND",
            details={
                "camera_index": camera_index,
                "suggestion": "Check camera connection and device index"
            }
        )


class CameraInitError(CameraError):
    """Camera initialization failed"""
    def __init__(self, camera_index, reason=None):
        super().__init__(
            message=f"Failed to initialize camera at index {camera_index}",
            error_code="CAMERA_INIT_FAILED",
            details={
                "camera_index": camera_index,
                "reason": reason,
                "suggestion": "Check camera permissions and ensure no other app is using it"
            }
        )


class CameraNotInitializedError(CameraError):
    """Attempting to use camera before initialization"""
    def __init__(self):
        super().__init__(
            message="Camera not initialized. Please start the camera first.",
            error_code="CAMERA_NOT_INITIALIZED",
            details={
                "suggestion": "Call /start_camera endpoint first"
            }
        )


class FrameCaptureError(CameraError):
    """Failed to capture frame"""
    def __init__(self):
        super().__init__(
            message="Failed to capture frame from camera",
            error_code="FRAME_CAPTURE_FAILED",
            details={
                "suggestion": "Check camera connection or restart the camera"
            }
        )


# Layer 2 Errors - Image Processing
class ProcessingError(ScannerError):
    """Image processing errors"""
    pass


class InvalidToneParametersError(ProcessingError):
    """Brightness or contrast outside the accepted range"""
    def __init__(self, name, value, minimum, maximum):
        super().__init__(
            message=f"{name} must be between {minimum} and {maximum}, got {value}",
            error_code="INVALID_TONE_PARAMETERS",
            details={
                "parameter": name,
                "value": value,
                "range": [minimum, maximum]
            }
        )


class NoCapturedStillError(ProcessingError):
    """Operation needs a captured still but none is held"""
    def __init__(self):
        super().__init__(
            message="No captured check image is held",
            error_code="NO_CAPTURED_STILL",
            details={
                "suggestion": "Hold the check inside the frame until it is captured"
            }
        )


# Layer 3 Errors - MICR Extraction
class OCRError(ScannerError):
    """OCR / MICR extraction errors"""
    pass


class ImageEncodeError(OCRError):
    """Captured still could not be encoded for the OCR gateway"""
    def __init__(self, image_format):
        super().__init__(
            message=f"Failed to encode image as {image_format}",
            error_code="IMAGE_ENCODE_FAILED",
            details={
                "format": image_format
            }
        )


class OCRBackendError(OCRError):
    """A recognition backend failed"""
    def __init__(self, backend, reason):
        super().__init__(
            message=f"OCR backend '{backend}' failed: {reason}",
            error_code="OCR_BACKEND_FAILED",
            details={
                "backend": backend,
                "reason": str(reason),
                "suggestion": "Check that the OCR engine is installed and the image is in focus"
            }
        )


# Error response helpers
def handle_error(error, log_message=None):
    """
    Handle error consistently across the application

    Args:
        error: Exception that occurred
        log_message: Optional custom log message

    Returns:
        dict: Error response for JSON serialization
    """
    if log_message:
        logger.error(log_message)

    if isinstance(error, ScannerError):
        # Known scanner error
        logger.error(f"{error.error_code}: {error.message}")
        if error.details:
            logger.debug(f"Error details: {error.details}")
        return error.to_dict()
    else:
        # Unexpected error
        logger.error(f"Unexpected error: {error}")
        logger.exception("Full traceback:")
        return {
            "success": False,
            "error": "An unexpected error occurred",
            "error_code": "UNEXPECTED_ERROR",
            "details": {
                "error_type": type(error).__name__,
                "error_message": str(error)
            }
        }
