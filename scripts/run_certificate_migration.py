"""
Run Certificate Migration

Issues a certificate for the best passing quiz score of every user and
course pair that does not have one yet, then prints the report. Safe to run
more than once; existing certificates are never duplicated.

Usage:
    python scripts/run_certificate_migration.py
    python scripts/run_certificate_migration.py --threshold 90
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add the src directory to the path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from certtrack.core.config import settings
from certtrack.core.database import async_session_maker, close_db
from certtrack.modules.certificates.migration import migrate_quiz_scores
from certtrack.modules.certificates.service import utc_today


async def run_migration(threshold: float) -> int:
    """Run the migration and print the report. Returns the number of errors."""
    async with async_session_maker() as db:
        report = await migrate_quiz_scores(
            db,
            pass_threshold=threshold,
            today=utc_today(),
            validity_years=settings.certificate_validity_years,
        )

    await close_db()

    print(report.message)
    print(f"  Processed: {report.processed}")
    print(f"  Created: {report.created}")
    print(f"  Already had a certificate: {report.skipped_exists}")
    print(f"  Below {threshold}%: {report.skipped_not_passing}")
    print(f"  No matching user: {report.skipped_no_holder}")
    print(f"  No matching course: {report.skipped_no_credential}")
    print(f"  Relinked legacy scores: {report.relinked}")

    if report.match_strategies:
        print("Match strategies:")
        for strategy, count in sorted(report.match_strategies.items()):
            print(f"  {strategy}: {count}")

    if report.fuzzy_matches:
        print("Fuzzy course matches (please review):")
        for match in report.fuzzy_matches:
            print(
                f"  quiz score {match.quiz_score_id}: {match.course_title!r} -> "
                f"{match.matched_course_title!r} (course {match.matched_course_id})"
            )

    if report.errors:
        print("Errors:")
        for error in report.errors:
            print(f"  quiz score {error.quiz_score_id} ({error.username}): {error.reason}")

    return len(report.errors)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Issue certificates for passing quiz scores")
    parser.add_argument(
        "--threshold",
        type=float,
        default=settings.pass_threshold_percent,
        help="Minimum percentage that counts as passing (default: %(default)s)",
    )
    args = parser.parse_args()

    errors = asyncio.run(run_migration(args.threshold))
    sys.exit(1 if errors else 0)
