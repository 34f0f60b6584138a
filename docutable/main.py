import argparse
import asyncio
import logging
import os
import time
from dataclasses import replace

from openai import AsyncOpenAI

from docutable.config import load_settings
from docutable.encoding import ingest
from docutable.export import build_export, save_export
from docutable.extraction import extract_tables
from docutable.models import ItemStatus, Session
from docutable.naming import unique_filename
from docutable.session import SessionStore, extract_items

# --------------------------------------------------
# Logging configuration
# --------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s",
)


async def process_files(args):
    """Ingest the given files, extract them concurrently and return the final session."""
    settings = load_settings()
    if not settings.openai_api_key:
        raise EnvironmentError("OPENAI_API_KEY environment variable not found.")

    openai_client = AsyncOpenAI(api_key=settings.openai_api_key)
    model = args.model or settings.model
    max_concurrency = args.max_concurrency or settings.max_concurrency

    async def extractor(payload, media_type):
        return await extract_tables(openai_client, payload, media_type, model)

    session = ingest(Session(), args.files)
    store = SessionStore(session)
    logging.info("Processing %d file(s) with model %s", len(session), model)

    await extract_items(store, [item.id for item in session.items], extractor, max_concurrency=max_concurrency)
    return store.session


def write_exports(session, output_dir):
    """
    Save one export per successfully extracted item; returns the written paths.

    Exports that would share a file name get a numeric suffix, and a failed
    export is logged without stopping the rest of the batch.
    """
    written = []
    used_filenames: set[str] = set()
    for item in session.items:
        if item.status != ItemStatus.COMPLETE:
            logging.warning("%s: %s", item.name, item.error or "not extracted")
            continue
        try:
            artifact = build_export(item.tables, item.name)
            if artifact is None:
                logging.warning("%s: no tables found", item.name)
                continue
            stem, extension = os.path.splitext(artifact.filename)
            artifact = replace(artifact, filename=unique_filename(stem, used_filenames) + extension)
            written.append(save_export(artifact, output_dir))
        except Exception as e:
            logging.error("Export failed for %s: %s", item.name, e)
    return written


# --------------------------------------------------
# CLI
# --------------------------------------------------

def build_arg_parser():
    parser = argparse.ArgumentParser(description="Extract tables from images and PDFs to Excel (CLI)")
    parser.add_argument("files", nargs="+", help="PNG, JPEG or PDF files to process")
    parser.add_argument(
        "-o",
        "--output-dir",
        default=None,
        help="Directory for the exported .xlsx / .zip files (default: $OUTPUT_DIR or output_files)",
    )
    parser.add_argument(
        "--model",
        default=None,
        help="OpenAI model to use for extraction (default: $OPENAI_MODEL or gpt-5-mini)",
    )
    parser.add_argument(
        "--max-concurrency",
        type=int,
        default=None,
        help="Maximum number of files extracted at the same time",
    )
    return parser


def main(argv=None):
    parser = build_arg_parser()
    args = parser.parse_args(argv)

    start_time = time.time()

    try:
        session = asyncio.run(process_files(args))
    except Exception as e:
        logging.error("Processing failed: %s", str(e))
        return 1

    if not session.items:
        logging.warning("No files could be ingested. Exiting.")
        return 1

    output_dir = args.output_dir or load_settings().output_dir
    written = write_exports(session, output_dir)
    logging.info("Extraction complete. %d of %d file(s) exported.", len(written), len(session))

    elapsed = time.time() - start_time
    logging.info("Total runtime: %.2f seconds", elapsed)
    return 0 if written else 1


if __name__ == "__main__":
    raise SystemExit(main())
