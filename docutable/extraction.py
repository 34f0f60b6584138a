import json
import logging

from pydantic import TypeAdapter, ValidationError

from docutable.encoding import strip_data_url_prefix
from docutable.llm import table_extraction_llm
from docutable.models import ExtractedTable

_tables_adapter = TypeAdapter(list[ExtractedTable])


class ExtractionError(Exception):
    """The service was unreachable, returned nothing, or returned something unusable."""


class TableDecodeError(ExtractionError):
    """The service's response did not match the table schema."""


def describe_exception(err: Exception) -> str:
    """
    Build a detailed string for exceptions, including HTTP body if present.
    Useful for surfacing OpenAI 4xx/5xx details in the logs.
    """
    parts = [f"{type(err).__name__}: {err}"]
    for attr in ["status_code", "code", "type", "param"]:
        val = getattr(err, attr, None)
        if val:
            parts.append(f"{attr}={val}")

    body = getattr(err, "body", None)
    if body is not None:
        if isinstance(body, (bytes, bytearray)):
            body = body.decode("utf-8", errors="ignore")
        parts.append(f"body={str(body)[:2000]}")
    return " | ".join(parts)


def decode_tables(raw_text: str) -> list[ExtractedTable]:
    """
    Strictly decode the service's raw JSON text into tables.

    Accepts either a bare JSON array of table objects or an object holding
    that array under "tables".

    Raises:
        TableDecodeError: if the text is not JSON or does not match the schema
    """
    try:
        data = json.loads(raw_text)
    except json.JSONDecodeError as e:
        raise TableDecodeError(f"Response is not valid JSON: {e}") from e

    if isinstance(data, dict):
        if "tables" not in data:
            raise TableDecodeError("Response object has no 'tables' field")
        data = data["tables"]
    if not isinstance(data, list):
        raise TableDecodeError(f"Expected a list of tables, got {type(data).__name__}")

    try:
        return _tables_adapter.validate_python(data)
    except ValidationError as e:
        raise TableDecodeError(f"Response does not match the table schema: {e}") from e


async def extract_tables(openai_client, payload: str, media_type: str, model: str) -> list[ExtractedTable]:
    """
    Extract every table from one encoded document.

    Parameters:
        openai_client (AsyncOpenAI): OpenAI client
        payload (str): Data URL or bare base64 content of the document
        media_type (str): Media type of the document
        model (str): OpenAI model to use

    Returns:
        list[ExtractedTable]: Tables in document order

    Raises:
        ExtractionError: on any transport, empty-response or decode failure
    """
    base64_data = strip_data_url_prefix(payload)
    logging.info(f"[Starting: Model {model}] Extracting tables from {media_type} document")

    try:
        message = await table_extraction_llm(
            base64_data=base64_data,
            media_type=media_type,
            openai_client=openai_client,
            model=model,
        )
    except ValidationError as e:
        logging.error(f"Structured response failed validation: {e}")
        raise TableDecodeError(f"Response does not match the table schema: {e}") from e
    except Exception as e:
        logging.error(f"OpenAI table extraction failed: {describe_exception(e)}")
        raise ExtractionError(f"Extraction request failed: {e}") from e

    if message.refusal:
        logging.warning(f"Model refused the request: {message.refusal}")
        raise ExtractionError(f"Service refused the request: {message.refusal}")
    if not message.content:
        logging.error("Empty response from the extraction service")
        raise ExtractionError("no content from service")

    tables = decode_tables(message.content)
    logging.info(f"[Finished: Model {model}] Extracted {len(tables)} table(s)")
    return tables
