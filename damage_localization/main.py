"""
Main entry point for the damage localization engine

Replays a recorded capture session through the full pipeline and writes the
deduplicated damages and their 3D positions as JSON.
"""

import argparse
import json
import logging
import sys
from pathlib import Path

import cv2

from damage_localization.analysis import AnalysisOrchestrator, ReplayVisionClient, load_session
from damage_localization.utils.config_manager import ConfigManager
from damage_localization.utils.errors import DamageAnalysisError
from damage_localization.utils.visualization import Visualizer


def write_overlays(result, frames, overlay_dir: Path) -> int:
    """Write annotated copies of the photos that have an image on disk."""
    overlay_dir.mkdir(parents=True, exist_ok=True)
    visualizer = Visualizer()
    written = 0

    for index, frame in enumerate(frames):
        if not frame.image_path:
            continue
        image = cv2.imread(frame.image_path)
        if image is None:
            continue
        damages = [d for d in result.detected_damages if d.image_index == index]
        annotated = visualizer.draw_detections(image, damages)
        cv2.imwrite(str(overlay_dir / f"overlay_{index:03d}.png"), annotated)
        written += 1

    return written


def main(argv=None):
    """Main entry point for the damage localization engine."""
    parser = argparse.ArgumentParser(
        description="Localize and measure detected damage in a scanned room"
    )

    parser.add_argument(
        "--config",
        type=str,
        help="Path to configuration file"
    )

    parser.add_argument(
        "--session",
        type=str,
        required=True,
        help="Session JSON with room surfaces, frames and recorded vision responses"
    )

    parser.add_argument(
        "--output",
        type=str,
        default="damage_result.json",
        help="Output JSON file"
    )

    parser.add_argument(
        "--overlay-dir",
        type=str,
        help="Directory for annotated photos"
    )

    parser.add_argument(
        "--no-delay",
        action="store_true",
        help="Skip the delay between replayed vision requests"
    )

    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging"
    )

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    # Load configuration
    try:
        config = ConfigManager(args.config)
        print(f"Loaded configuration from: {config.config_path}")
    except (FileNotFoundError, ValueError) as e:
        print(f"Error loading configuration: {e}")
        return 1

    session_path = Path(args.session)
    if not session_path.exists():
        print(f"Session file does not exist: {args.session}")
        return 1

    if args.no_delay:
        config.set('analysis.request_delay', 0.0)

    try:
        session = load_session(str(session_path), config.get('placement.default_ceiling_height', 2.4))
    except (OSError, KeyError, ValueError) as e:
        print(f"Error loading session: {e}")
        return 1

    client = ReplayVisionClient(session.responses, config.get('analysis.min_confidence', 0.0))
    orchestrator = AnalysisOrchestrator(client, config)

    try:
        result = orchestrator.analyze(session.frames, session.room)
    except DamageAnalysisError as e:
        print(f"Analysis failed: {e.message}")
        print(e.recovery_suggestion)
        return 1

    output = result.to_dict()
    output['room_positions'] = [p.to_dict() for p in result.room_positions]
    output['session_positions'] = [p.to_dict() for p in result.session_positions]

    output_path = Path(args.output)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, 'w') as file:
        json.dump(output, file, indent=2)

    print("Damage Localization")
    print("=" * 50)
    print(f"Images analyzed: {result.analyzed_image_count} ({result.failed_image_count} failed)")
    print(f"Damages found: {len(result.detected_damages)}")
    print(f"Overall condition: {result.overall_condition.value}")
    for damage in result.detected_damages:
        size = damage.formatted_dimensions or "size unknown"
        where = damage.surface_name or damage.surface_category.value
        print(f"  - {damage.damage_type.display_name} ({damage.severity.value}) on {where}: {size}")
    print(f"Results written to: {output_path}")

    if args.overlay_dir:
        count = write_overlays(result, session.frames, Path(args.overlay_dir))
        print(f"Overlays written: {count}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
