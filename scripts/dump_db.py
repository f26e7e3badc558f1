import os
import csv
import sys
import logging
import psycopg2

logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")
log = logging.getLogger(__name__)

OUTPUT_FILE = "frameworks-found.csv"


def dump(db_url: str, output_file: str = OUTPUT_FILE) -> int:
    """Write the findings of the most recent finished run to CSV. Returns the row count."""
    log.info("Connecting to database …")
    conn = psycopg2.connect(db_url)

    try:
        with conn.cursor() as cur:
            log.info("Querying findings of the latest finished run …")
            cur.execute(
                """
                SELECT
                    project,
                    repository,
                    relative_path,
                    target_framework,
                    object_id,
                    repository_url
                FROM framework_findings
                WHERE run_id = (
                    SELECT id FROM inventory_runs
                    WHERE finished_at IS NOT NULL
                    ORDER BY id DESC
                    LIMIT 1
                )
                ORDER BY id
                """
            )
            rows = cur.fetchall()
            columns = [desc[0] for desc in cur.description]
    finally:
        conn.close()

    log.info("Writing %d rows to %s …", len(rows), output_file)
    with open(output_file, "w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(columns)
        writer.writerows(rows)

    log.info("Dump complete: %s (%d rows)", output_file, len(rows))
    return len(rows)


if __name__ == "__main__":
    db_url = os.environ.get("DATABASE_URL")
    if not db_url:
        log.error("DATABASE_URL environment variable is required")
        sys.exit(1)

    dump(db_url)
