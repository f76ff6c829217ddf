"""Receipt extraction pipeline: parsing, repair, validation and retries."""
