"""
Preview Certificate Emails

Renders the holder and administrator emails for a milestone with sample
data and writes them as HTML files, for checking the templates in a browser.
Nothing is sent.

Usage:
    python scripts/preview_expiry_email.py
    python scripts/preview_expiry_email.py --milestone 7-day --out /tmp/previews
"""

import argparse
import sys
from datetime import date, timedelta
from pathlib import Path

# Add the src directory to the path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from certtrack.core.config import settings
from certtrack.modules.certificates.contracts import (
    CertificateSnapshot,
    CredentialRef,
    HolderRef,
)
from certtrack.modules.certificates.models import CertificateStatus, Milestone
from certtrack.modules.certificates.templates import render_notification


def sample_snapshot(milestone: Milestone) -> CertificateSnapshot:
    """A certificate that is exactly due for ``milestone`` today."""
    today = date.today()
    offset = milestone.offset_days if milestone.offset_days is not None else -1
    expiry = today + timedelta(days=offset)
    return CertificateSnapshot(
        id=1234,
        holder=HolderRef(id=1, username="ada", email="ada@example.com", first_name="Ada"),
        credential=CredentialRef(id=7, title="Python Basics"),
        issued_date=expiry - timedelta(days=365),
        expiry_date=expiry,
        status=CertificateStatus.EXPIRED if offset < 0 else CertificateStatus.ACTIVE,
    )


def write_previews(milestone: Milestone, out_dir: Path) -> list[Path]:
    rendered = render_notification(
        milestone, sample_snapshot(milestone), settings.renewal_base_url
    )
    out_dir.mkdir(parents=True, exist_ok=True)

    paths = []
    for audience, email in (("holder", rendered.holder), ("admin", rendered.admin)):
        path = out_dir / f"{milestone.value}-{audience}.html"
        path.write_text(email.html, encoding="utf-8")
        print(f"[{audience}] {email.subject}")
        print(f"  -> {path}")
        paths.append(path)
    return paths


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Render certificate emails to HTML files")
    parser.add_argument(
        "--milestone",
        choices=[m.value for m in Milestone] + ["all"],
        default="all",
    )
    parser.add_argument("--out", type=Path, default=Path("email-previews"))
    args = parser.parse_args()

    milestones = list(Milestone) if args.milestone == "all" else [Milestone(args.milestone)]
    for milestone in milestones:
        write_previews(milestone, args.out)
