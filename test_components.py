"""Check the VoiceScribe components on this machine by hand."""

import asyncio
import importlib

from voicescribe.utils.logger import setup_logger

logger = setup_logger(__name__)


def test_imports():
    """Check that every third-party library can be imported."""
    logger.info("Checking imports...")

    for module in ("ffmpeg", "pydantic", "yaml", "PySide6.QtCore"):
        try:
            importlib.import_module(module)
            logger.info(f"✓ {module} imported successfully")
        except ImportError as e:
            logger.error(f"✗ {module} import failed: {e}")


def test_config():
    """Check configuration loading."""
    logger.info("\nChecking configuration...")

    from voicescribe.config.config_loader import config
    from voicescribe.config.validators import AudioRecordingOptions
    from voicescribe.utils.exceptions import ConfigurationError

    logger.info(f"✓ Config loaded from {config.config_path}")
    try:
        options = AudioRecordingOptions.from_config()
    except ConfigurationError as e:
        logger.error(f"✗ Recording options invalid: {e}")
        return
    logger.info(f"  Format: {options.audio_format.value} ({options.quality.value})")
    logger.info(f"  Max duration: {options.max_duration}")
    logger.info(f"  Silence detection: {options.silence_detection}")


def test_diagnostics():
    """Run the diagnostics report against the installed FFmpeg."""
    logger.info("\nRunning diagnostics...")

    from voicescribe.audio.diagnostics import log_diagnostics_report, run_diagnostics

    report = asyncio.run(run_diagnostics())
    log_diagnostics_report(report)
    if report.ok:
        logger.info(f"✓ {len(report.devices)} input device(s) available")
    else:
        logger.error("✗ Diagnostics reported errors")


def main():
    """Run all component checks."""
    logger.info("=== VoiceScribe Component Check ===\n")

    test_imports()
    test_config()
    test_diagnostics()

    logger.info("\n=== Check Complete ===")
    logger.info("If everything passed, try: python -m voicescribe.main test-recording")


if __name__ == "__main__":
    main()
