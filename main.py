#!/usr/bin/env python3
"""
FocusBand - Tracking Client Entry Point
Starts a tracking session, scores webcam frames and uploads the metrics to
the FocusBand API until interrupted.
"""

import sys
import time
import logging

from config import config
from tracker.services import FocusApiClient, SessionManager, SessionState

SUMMARY_INTERVAL = 10  # seconds between progress log lines


def setup_logging():
    """Configure logging for the application."""
    logging.basicConfig(
        level=getattr(logging, config.LOG_LEVEL.upper(), logging.INFO) if not config.DEBUG else logging.DEBUG,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(config.LOG_FILE),
            logging.StreamHandler(sys.stdout)
        ]
    )


class ApplicationManager:
    """Manages the tracking client lifecycle"""

    def __init__(self):
        self.api_client = None
        self.session_manager = None
        self.eye_tracker = None
        self.logger = logging.getLogger(__name__)

    def start(self):
        """Start tracking and block until interrupted"""
        setup_logging()
        self.logger.info(f"Starting {config.APP_NAME} v{config.APP_VERSION} (API: {config.API_BASE_URL})")

        # The camera stack is only needed here
        from tracker.eye_tracker import EyeTracker

        self.api_client = FocusApiClient()
        self.session_manager = SessionManager(self.api_client)
        self.session_manager.register_state_change_callback(
            lambda state: self.logger.info(f"Session {state.value}")
        )

        if not self.session_manager.start_session():
            self.logger.error("Could not start a session - is the API running?")
            self.api_client.close()
            return 1

        self.eye_tracker = EyeTracker(camera_index=config.CAMERA_INDEX)
        self.eye_tracker.on_attention(self.session_manager.record)
        self.eye_tracker.on_status(lambda status: self.logger.info(f"Tracker: {status}"))
        self.eye_tracker.on_error(lambda error: self.logger.error(f"Tracker: {error}"))
        self.eye_tracker.start_tracking()

        try:
            self._wait()
        except KeyboardInterrupt:
            self.logger.info("Interrupted - stopping session")
        finally:
            self.shutdown()

        return 0

    def _wait(self):
        last_summary = time.monotonic()
        while self.eye_tracker.is_alive():
            time.sleep(0.5)
            if time.monotonic() - last_summary >= SUMMARY_INTERVAL:
                last_summary = time.monotonic()
                summary = self.session_manager.get_session_summary()
                self.logger.info(
                    f"{summary['duration']}s tracked, attention {summary['current_attention']:.0f} "
                    f"(avg {summary['average_attention']:.1f}), {summary['pending_metrics']} metrics queued"
                )
        self.logger.warning("Eye tracker stopped")

    def shutdown(self):
        """Stop tracking; a failed final save is retried on the next Ctrl+C"""
        if self.eye_tracker:
            self.eye_tracker.stop_tracking()

        while not self.session_manager.stop_session():
            if self.session_manager.state == SessionState.INACTIVE:
                break
            self.logger.warning("Final metrics were not saved. Press Ctrl+C to retry.")
            try:
                while True:
                    time.sleep(1)
            except KeyboardInterrupt:
                self.logger.info("Retrying stop")

        self.session_manager.cleanup()
        self.api_client.close()
        self.logger.info("Application stopped")


def main():
    """Main application entry point."""
    app_manager = ApplicationManager()
    sys.exit(app_manager.start())


if __name__ == "__main__":
    main()
