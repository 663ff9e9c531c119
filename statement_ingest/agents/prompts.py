"""Prompts for statement extraction: system instruction and the JSON-shape user prompt."""

SYSTEM_PROMPT = (
    "You are a bank statement parser. Extract ALL transactions accurately. "
    "Return ONLY valid JSON with no markdown fences."
)

STATEMENT_PROMPT = """
Analyze this bank statement and extract ALL transactions. Return ONLY valid JSON (no markdown code fences):
{
  "accountName": "name on account",
  "accountNumber": "last 4 digits",
  "bankName": "bank name",
  "periodStart": "YYYY-MM-DD",
  "periodEnd": "YYYY-MM-DD",
  "beginningBalance": 0.00,
  "endingBalance": 0.00,
  "transactions": [
    {
      "date": "YYYY-MM-DD",
      "description": "full description",
      "amount": -50.00,
      "check_number": null
    }
  ]
}

Rules:
- Use NEGATIVE amounts for debits/withdrawals/payments
- Use POSITIVE amounts for credits/deposits
- Dates MUST be in YYYY-MM-DD format
- Include ALL transactions, don't skip any
""".strip()

DOCUMENT_TEXT_HEADER = "Bank statement document text:"
