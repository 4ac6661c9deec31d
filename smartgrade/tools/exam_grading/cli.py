#!/usr/bin/env python3
"""Command-line interface for grading one scanned exam against an answer key."""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import List, Optional

import yaml

from smartgrade.libs.config_loader import ConfigType, load_all_configs
from smartgrade.libs.media_encoder import encode_image_files
from .errors import ExamGradingError
from .models import GradingResult, Language
from .orchestrator import GradingOrchestrator

LOG = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Grade scanned exam pages against an answer key using an OpenAI vision model',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Grade a two-page exam against a one-page key
  smartgrade-exam --rubric key.png --exam page1.jpg --exam page2.jpg

  # Extra instructions, Chinese output, save the result
  smartgrade-exam -r key.png -e page1.jpg -i "Ignore spelling mistakes" -l zh -o result.yaml

  # Teach the grader a new rule from feedback and grade again
  smartgrade-exam -r key.png -e page1.jpg --feedback "Q3 needs the keyword 'regeneration'" --regrade
        """
    )

    parser.add_argument(
        '--rubric', '-r',
        type=Path,
        action='append',
        required=True,
        help='Answer key / rubric page image (repeat in page order)'
    )
    parser.add_argument(
        '--exam', '-e',
        type=Path,
        action='append',
        required=True,
        help='Student exam page image (repeat in page order)'
    )
    parser.add_argument(
        '--instructions', '-i',
        type=str,
        default='',
        help='Additional grading instructions'
    )
    parser.add_argument(
        '--instructions-file',
        type=Path,
        default=None,
        help='Read additional grading instructions from a text file'
    )
    parser.add_argument(
        '--language', '-l',
        choices=[lang.value for lang in Language],
        default=None,
        help='Language of the written feedback (overrides config value)'
    )
    parser.add_argument(
        '--output', '-o',
        type=Path,
        default=None,
        help='Path to save the grading result as YAML'
    )
    parser.add_argument(
        '--feedback',
        type=str,
        default=None,
        help='Teacher feedback used to derive a new grading rule after grading'
    )
    parser.add_argument(
        '--regrade',
        action='store_true',
        help='Grade again after a new rule was learned from --feedback'
    )
    parser.add_argument(
        '--model', '-m',
        type=str,
        default=None,
        help='OpenAI model to use (overrides config value)'
    )
    parser.add_argument(
        '--config-dir',
        type=str,
        default=None,
        help='Directory of YAML config files (default: the project config/ directory)'
    )
    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable verbose logging'
    )
    return parser


def print_result(result: GradingResult) -> None:
    print(f"\n{'='*60}")
    print(f"Grading Complete{': ' + result.student_name if result.student_name else ''}")
    print(f"{'='*60}")
    print(f"Score: {result.total_score:g}/{result.max_score:g}  Grade: {result.letter_grade}")
    print(f"Summary: {result.summary}")
    print("\nQuestions:")
    for q in result.questions:
        mark = "correct" if q.is_correct else "incorrect"
        print(f"  Q{q.question_id}: {q.score:g}/{q.max_score:g} ({mark}) {q.comments}")
    print(f"\nFeedback: {result.constructive_feedback}")


def save_result(result: GradingResult, path: Path) -> None:
    with open(path, 'w', encoding='utf-8') as f:
        yaml.safe_dump(result.to_yaml_dict(), f, allow_unicode=True, sort_keys=False)
    LOG.info(f"Result saved to {path}")


async def run(args: argparse.Namespace, orchestrator: GradingOrchestrator) -> Optional[GradingResult]:
    """Encode uploads, grade, and optionally refine and regrade."""
    session = orchestrator.session
    session.add_rubric_images(await encode_image_files(args.rubric))
    session.add_exam_images(await encode_image_files(args.exam))

    instructions = args.instructions
    if args.instructions_file:
        instructions = "\n\n".join(
            p for p in (instructions.strip(), args.instructions_file.read_text(encoding='utf-8').strip()) if p
        )
    session.set_instructions(instructions)
    if args.language:
        session.set_language(args.language)

    result = await orchestrator.run_grading()
    print_result(result)

    if args.feedback:
        rule = await orchestrator.improve_instructions(args.feedback)
        if not rule:
            print("\nNo new rule was produced from the feedback; result unchanged.")
        else:
            print(f"\nLearned rule: {rule}")
            print(f"\nCurrent instructions:\n{session.current_instructions()}")
            if args.regrade:
                result = await orchestrator.run_grading()
                print_result(result)

    if args.output and result is not None:
        save_result(result, args.output)
    return result


def main(argv: Optional[List[str]] = None) -> None:
    """Main entry point for the smartgrade-exam command."""
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.regrade and not args.feedback:
        parser.error("--regrade requires --feedback")

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    for path in args.rubric + args.exam + ([args.instructions_file] if args.instructions_file else []):
        if not path.is_file():
            LOG.error(f"File does not exist: {path}")
            sys.exit(1)

    try:
        configs: ConfigType = load_all_configs(args.config_dir)
    except Exception as e:
        LOG.error(f"Failed to load configuration: {e}")
        sys.exit(1)

    try:
        orchestrator = GradingOrchestrator.from_configs(configs, model=args.model)
    except Exception as e:
        LOG.error(f"Failed to initialize grader: {e}")
        sys.exit(1)

    try:
        asyncio.run(run(args, orchestrator))
    except (ExamGradingError, ValueError) as e:
        LOG.error(f"Grading failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
