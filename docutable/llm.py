from pydantic import BaseModel


class TableSchema(BaseModel):
    title: str
    headers: list[str]
    rows: list[list[str]]


class TableExtraction(BaseModel):
    # Structured outputs need an object at the top level, so the table array lives under "tables"
    tables: list[TableSchema]


EXTRACTION_PROMPT = """
            You are an expert in document analysis and table extraction.
            Analyze this document. It may contain multiple pages with separate tables.

            Task: Extract tabular data from the document.

            Rules:
            1. Treat each page or distinct section as a separate table. DO NOT MERGE tables from different pages unless they are clearly one continuous table (e.g., page 1 ends with no bottom border and page 2 starts with no headers).
            2. If the document has multiple pages with independent tables (e.g. separate invoices, separate part lists), extract them as separate items in the returned list.
            3. For each table, extract the column headers and the rows, keeping the left-to-right column order.
            4. Capture all numerical values exactly as strings. Do not round, reformat or drop leading zeros, units or separators.
            5. Provide a descriptive title for each table (e.g., "Page 1 - Invoice", "Page 2 - Parts List").

            Return a JSON object whose "tables" field is the array of table objects.
            """


def build_media_part(base64_data, media_type):
    """Build the chat content part carrying the document itself."""
    data_url = f"data:{media_type};base64,{base64_data}"
    if media_type == "application/pdf":
        return {
            "type": "file",
            "file": {"filename": "document.pdf", "file_data": data_url},
        }
    return {
        "type": "image_url",
        "image_url": {"url": data_url, "detail": "high"},
    }


async def table_extraction_llm(base64_data, media_type, openai_client, model, structure_output=TableExtraction):
    """
    Send one document to the model and return the assistant message.

    Exactly one request is made; retrying is left to the caller.
    """
    response = await openai_client.beta.chat.completions.parse(
        model=model,
        messages=[
            {
                "role": "user",
                "content": [
                    build_media_part(base64_data, media_type),
                    {"type": "text", "text": EXTRACTION_PROMPT},
                ],
            }
        ],
        response_format=structure_output,
    )
    return response.choices[0].message
