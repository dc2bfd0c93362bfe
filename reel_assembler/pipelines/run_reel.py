"""Command-line entry point - assemble one reel from local inputs."""

import argparse
import sys
from pathlib import Path

from reel_assembler.core.config import settings
from reel_assembler.core.logging_config import get_logger, setup_logging
from reel_assembler.models.schemas import ReelRequest, ReelStatus, ReelTone
from reel_assembler.pipelines.orchestrator import ReelOrchestrator
from reel_assembler.services.collaborators import LocalMusicFile, TimelineFileAnalyzer
from reel_assembler.services.music_service import BackgroundMusicFetcher


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Reel Assembler - stock visuals + voiceover + captions -> vertical short",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--timeline", type=Path, required=True, help="Scene timeline JSON from the analysis service")
    parser.add_argument("--voiceover", type=Path, required=True, help="Voiceover audio file (authoritative duration)")
    parser.add_argument("--captions", type=Path, required=True, help="Styled subtitle file (.ass or .srt)")
    parser.add_argument("--script-file", type=Path, default=None, help="Narration script text (optional)")
    parser.add_argument(
        "--music",
        type=Path,
        default=None,
        help="Local background music; otherwise Jamendo is searched when JAMENDO_API_KEY is set",
    )
    parser.add_argument("--no-music", action="store_true", help="Voice-only audio")
    parser.add_argument(
        "--tone",
        type=str,
        default=ReelTone.PROFESSIONAL.value,
        choices=[t.value for t in ReelTone],
        help="Narration tone (default: professional)",
    )
    parser.add_argument("--voice-id", type=str, default="default", help="Voice identifier (recorded on the job)")
    parser.add_argument("--output-dir", type=Path, default=None, help=f"Output directory (default: {settings.output_dir})")
    parser.add_argument("--log-file", type=Path, default=None, help="Also write logs to this file")
    return parser


def main(argv=None) -> int:
    """Main entrypoint for the reel CLI."""
    args = build_parser().parse_args(argv)

    setup_logging(log_level=settings.log_level, log_file=args.log_file or (Path(settings.log_file) if settings.log_file else None))
    logger = get_logger(__name__)

    script = ""
    if args.script_file:
        try:
            script = args.script_file.read_text(encoding="utf-8")
        except OSError as e:
            logger.error(f"Could not read script file: {e}")
            return 1

    if args.no_music:
        music = None
    elif args.music:
        music = LocalMusicFile(args.music, logger)
    elif settings.jamendo_api_key:
        music = BackgroundMusicFetcher(settings, logger)
    else:
        logger.info("No music source configured; producing voice-only audio")
        music = None

    request = ReelRequest(
        script=script,
        tone=ReelTone(args.tone),
        voice_id=args.voice_id,
        voiceover_path=args.voiceover,
        captions_path=args.captions,
        music_path=args.music,
    )
    orchestrator = ReelOrchestrator(
        settings,
        logger,
        analyzer=TimelineFileAnalyzer(args.timeline),
        music=music,
        output_dir=args.output_dir,
    )

    logger.info("=" * 60)
    logger.info("Reel Assembler")
    logger.info("=" * 60)
    try:
        job = orchestrator.run(request)
    except KeyboardInterrupt:
        logger.warning("Interrupted by user")
        return 1

    if job.status != ReelStatus.COMPLETED:
        logger.error(f"Reel {job.status.value}: {job.error or 'no output written'}")
        return 1

    logger.info(f"Output: {job.output_path}")
    if job.thumbnail_path:
        logger.info(f"Thumbnail: {job.thumbnail_path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
