"""
Export scraped brand files (<output_dir>/<brand>.json) to CSV, or print a summary.
Usage:
  python -m autopiter.export [--output-dir DIR] [--output FILE] [--brand BRAND]
  python -m autopiter.export --summary  # per-brand counts, failed detail links
"""
import argparse
import csv
from pathlib import Path

from autopiter.config import OUTPUT_DIR
from autopiter.models import BrandRecord
from autopiter.store import iter_brand_files

CSV_COLUMNS = ["brand", "model", "submodel_link", "category", "link_name", "link", "part_name", "parameters"]


def _format_parameters(parameters: list[dict]) -> str:
    return "; ".join(f"{p.get('key') or ''}: {p.get('value') or ''}" for p in parameters)


def iter_part_rows(record: BrandRecord, brand: str):
    """One row per part detail; a link without part details gives one row with empty part columns."""
    for model_name, model in record.models.items():
        for submodel in model.submodels:
            for top in submodel.parts:
                for path, node in top.iter_nodes():
                    category = " > ".join(path)
                    for link in node.links:
                        base = {
                            "brand": brand,
                            "model": model_name,
                            "submodel_link": submodel.link,
                            "category": category,
                            "link_name": (link.name or "").strip(),
                            "link": link.link,
                        }
                        if not link.parts:
                            yield {**base, "part_name": "", "parameters": ""}
                            continue
                        for part in link.parts:
                            yield {
                                **base,
                                "part_name": (part.name or "").strip(),
                                "parameters": _format_parameters(part.parameters),
                            }


def export_csv(output_dir: Path, output_path: Path, brand: str | None = None) -> int:
    rows_written = 0
    with open(output_path, "w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=CSV_COLUMNS)
        writer.writeheader()
        for brand_name, record in iter_brand_files(output_dir):
            if brand and brand_name != brand:
                continue
            for row in iter_part_rows(record, brand_name):
                writer.writerow(row)
                rows_written += 1
    return rows_written


def summarize(output_dir: Path) -> list[dict]:
    out = []
    for brand_name, record in iter_brand_files(output_dir):
        counts = {"brand": brand_name, "models": len(record.models), "submodels": 0, "categories": 0, "links": 0, "failed_links": 0}
        for model in record.models.values():
            counts["submodels"] += len(model.submodels)
            for submodel in model.submodels:
                for top in submodel.parts:
                    for _, node in top.iter_nodes():
                        counts["categories"] += 1
                        counts["links"] += len(node.links)
                        counts["failed_links"] += sum(1 for link in node.links if link.parts is None)
        out.append(counts)
    return out


def main():
    ap = argparse.ArgumentParser(description="Export autopiter brand JSON files to CSV")
    ap.add_argument("--output-dir", "-d", type=Path, default=OUTPUT_DIR, help="Directory with <brand>.json files")
    ap.add_argument("--output", "-o", help="Output CSV path")
    ap.add_argument("--brand", help="Only export this brand")
    ap.add_argument("--summary", "-s", action="store_true", help="Print per-brand counts instead of exporting")
    args = ap.parse_args()
    if args.summary:
        rows = summarize(args.output_dir)
        for row in rows:
            print(
                f"{row['brand']}: {row['models']} models, {row['submodels']} submodels, "
                f"{row['categories']} categories, {row['links']} links ({row['failed_links']} without details)"
            )
        print(f"Total brands: {len(rows)}")
        return
    out = Path(args.output or "autopiter_export.csv")
    n = export_csv(args.output_dir, out, brand=args.brand)
    print(f"Exported {n} rows to {out}")


if __name__ == "__main__":
    main()
