"""
File delivery channel
"""
import json
from dataclasses import asdict
from pathlib import Path
from typing import List

from core.entities import DisplayUnit
from delivery.base import DeliveryChannel, DeliveryError, DeliveryReport


class FileDelivery(DeliveryChannel):
    name = "file"

    def __init__(self, output_dir: str = "output", max_units: int = 100):
        self.output_dir = Path(output_dir)
        self.max_units = max_units

    async def deliver(
        self,
        *,
        digest_date: str,
        units: List[DisplayUnit],
        label: str = "bookmark_digest",
    ) -> DeliveryReport:
        kept = units[:self.max_units]
        base = self.output_dir / f"{label}_{digest_date}"

        json_path = base.with_suffix(".json")
        md_path = base.with_suffix(".md")

        md_lines: List[str] = []
        for unit in kept:
            md_lines.append(f"# {unit.title}")
            if unit.description:
                md_lines.append(unit.description)
            md_lines.append("")
            for section in unit.sections:
                md_lines.append(f"## {section.name}")
                md_lines.append(section.value)
                md_lines.append("")
            if unit.footer:
                md_lines.append(f"_{unit.footer}_")
            md_lines.append("\n")

        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
            json_path.write_text(
                json.dumps([asdict(unit) for unit in kept], indent=2, ensure_ascii=False),
                encoding="utf-8",
            )
            md_path.write_text("\n".join(md_lines), encoding="utf-8")
        except OSError as e:
            raise DeliveryError(f"Failed to write digest files: {e}") from e

        return DeliveryReport(channel=self.name, sent=len(kept), dropped=len(units) - len(kept))

    def save_attachment(self, filename: str, text: str) -> Path:
        """Write a companion text file (e.g. a full prompt) next to the delivered units."""
        path = self.output_dir / filename
        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
            path.write_text(text, encoding="utf-8")
        except OSError as e:
            raise DeliveryError(f"Failed to write {filename}: {e}") from e
        return path
