"""Run one real question-set generation call against the configured LLM provider.

Usage example:
  python scripts/run_generate_questions.py --role "Backend Engineer" --seniority advanced --language English
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from pathlib import Path


REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = REPO_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from interview_core import QuestionGenerator, UpstreamUnavailable, client_from_env


def load_dotenv(path: Path) -> None:
    """Load KEY=VALUE pairs from a .env file into process environment."""
    if not path.exists():
        return

    for raw_line in path.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue

        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip()
        if not key:
            continue

        # Remove surrounding quotes if present.
        if len(value) >= 2 and value[0] == value[-1] and value[0] in {"'", '"'}:
            value = value[1:-1]

        os.environ.setdefault(key, value)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Generate an interview question set.")
    parser.add_argument("--role", required=True)
    parser.add_argument("--seniority", default="intermediate")
    parser.add_argument("--language", default="English")
    parser.add_argument("--pretty", action="store_true", help="Pretty-print JSON output.")
    parser.add_argument("--verbose", action="store_true", help="Log generation events to stderr.")
    return parser.parse_args()


def main() -> int:
    load_dotenv(REPO_ROOT / ".env")
    args = parse_args()
    if args.verbose:
        logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(message)s")

    generator = QuestionGenerator(llm_client=client_from_env())
    try:
        result = generator.generate_questions(args.role, args.seniority, args.language)
    except UpstreamUnavailable as err:
        print(json.dumps(err.to_dict()), file=sys.stderr)
        return 1

    output = {
        "questions": result.questions,
        "rubric": result.rubric_guidance,
        "recovered_by": result.recovered_by,
    }
    print(json.dumps(output, indent=2 if args.pretty else None, ensure_ascii=False))
    return 0


if __name__ == "__main__":
    sys.exit(main())
