#!/usr/bin/env python3
"""
EDI Message Analyzer Command Line Tool

Analyzes an EDI message (EDIFACT, XML or plain text) and writes the analysis
as JSON.

Usage:
    python main.py message.edi                              # Analyze to message.json
    python main.py message.edi analysis.json                # Analyze to a specific output file
    python main.py message.edi --validate                   # Print the validation report only
    python main.py message.edi --reference-path ./refdata   # Use custom reference dictionaries
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

# Try importing from installed package first, fallback to src path
try:
    from analyzer_config import AnalyzerSettings
    from analyzer_errors import AnalyzerError, EmptyMessageError, ParseError
    from logging_config import configure_logging
    from message_analyzer import MessageAnalyzer, require_message
    from reference_manager import ReferenceManager
    from validation_service import EdifactValidationService
except ImportError:
    # Add src to path for imports when not installed
    sys.path.insert(0, str(Path(__file__).parent / "src"))
    from analyzer_config import AnalyzerSettings
    from analyzer_errors import AnalyzerError, EmptyMessageError, ParseError
    from logging_config import configure_logging
    from message_analyzer import MessageAnalyzer, require_message
    from reference_manager import ReferenceManager
    from validation_service import EdifactValidationService

logger = logging.getLogger("edi_analyzer")

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_EMPTY_INPUT = 2


def read_message(input_file: str) -> str:
    with open(input_file, 'r', encoding='utf-8-sig') as f:
        return f.read()


def validate_file(message: str, reference_manager: ReferenceManager) -> int:
    """Prints the validation report; exit code reflects validity."""
    report = EdifactValidationService(reference_manager).validate_edifact_message(message)
    print(json.dumps(report.to_dict(), indent=2, ensure_ascii=False))
    return EXIT_OK if report.is_valid else EXIT_FAILURE


def analyze_file(message: str, output_file: str, analyzer: MessageAnalyzer) -> int:
    """Analyzes the message and saves the result as JSON."""
    result = asyncio.run(analyzer.analyze(message))

    print(f"Format: {result.format.value}")
    if result.message_type:
        print(f"Message type: {result.message_type}")
    print(f"Summary: {result.summary}")
    if result.plausibility_checks:
        print(f"Plausibility checks ({len(result.plausibility_checks)}):")
        for i, check in enumerate(result.plausibility_checks[:10]):
            print(f"  {i+1}. {check}")
        if len(result.plausibility_checks) > 10:
            print(f"  ... and {len(result.plausibility_checks) - 10} more")

    json_output = result.to_json()
    with open(output_file, 'w', encoding='utf-8') as f:
        f.write(json_output)

    print(f"JSON output saved to: {output_file}")
    return EXIT_OK


def main(argv=None) -> int:
    """Main entry point with command line argument parsing."""
    settings = AnalyzerSettings.from_env()

    parser = argparse.ArgumentParser(
        description="Analyze EDI messages and write the analysis as JSON",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py utilmd.edi                         # Analyze utilmd.edi -> utilmd.json
  python main.py utilmd.edi analysis.json           # Analyze to specific output
  python main.py utilmd.edi --validate              # Validation report only
        """
    )
    parser.add_argument('input_file', help='Input message file')
    parser.add_argument('output_file', nargs='?',
                        help='Output JSON file (default: input_file.json)')
    parser.add_argument('--reference-path', default=settings.reference_path,
                        help='Directory with reference dictionaries (*.json)')
    parser.add_argument('--validate', action='store_true',
                        help='Validate the EDIFACT message instead of analyzing it')
    parser.add_argument('--log-level', default=settings.log_level,
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
                        type=str.upper, help='Logging level (default: %(default)s)')

    args = parser.parse_args(argv)
    configure_logging(args.log_level)

    if not args.output_file:
        args.output_file = str(Path(args.input_file).with_suffix('.json'))

    if not Path(args.input_file).exists():
        print(f"Error: Input file not found: {args.input_file}")
        return EXIT_FAILURE

    try:
        message = require_message(read_message(args.input_file))
    except EmptyMessageError as e:
        print(f"Error: {e}")
        return EXIT_EMPTY_INPUT

    reference_manager = ReferenceManager(args.reference_path)
    if args.validate:
        return validate_file(message, reference_manager)

    analyzer = MessageAnalyzer(reference_manager, settings=settings)
    try:
        return analyze_file(message, args.output_file, analyzer)
    except ParseError as e:
        print(f"Error: Message could not be parsed: {e}")
        return EXIT_FAILURE
    except AnalyzerError as e:
        logger.error(f"Analysis failed: {e}", exc_info=True)
        print(f"Error during analysis: {e}")
        return EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main())
