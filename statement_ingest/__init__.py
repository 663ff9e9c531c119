"""Statement Ingestion: bank statement parsing, rule-based categorization and replace-all persistence."""
