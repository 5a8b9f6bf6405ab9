"""Email/phone/address harvesting."""
from classification.contact_info import (
    extract_addresses,
    extract_contact_info,
    extract_emails,
    extract_phones,
    format_phone,
)

ESTIMATE = """Estimate #88
Name / Address
Jane Doe
12 Main St
Springfield, IL 62701
Job Location
Well site 4
Total $1,200.00"""


def test_emails_are_lowercased_and_deduplicated():
    text = "Write to Jane@Acme.com or jane@acme.com, cc billing@acme.co.uk"
    assert extract_emails(text) == ["jane@acme.com", "billing@acme.co.uk"]


def test_phones_are_normalized():
    text = "Call (555) 123-4567, or 555.123.4567, fax 555 987 6543"
    assert extract_phones(text) == ["555-123-4567", "555-987-6543"]


def test_format_phone():
    assert format_phone("5551234567") == "555-123-4567"


def test_zip_block_takes_two_lines_above_and_one_below():
    addresses = extract_addresses(ESTIMATE)
    assert addresses[0] == "Jane Doe, 12 Main St, Springfield, IL 62701, Job Location"


def test_name_address_header_block_stops_at_job_location():
    addresses = extract_addresses(ESTIMATE)
    assert "Jane Doe, 12 Main St, Springfield, IL 62701" in addresses


def test_preceding_totals_are_excluded():
    text = "Sales tax 8%\nTotal due\n90210\nSignature here"
    # both preceding lines and the signature line are filtered out
    assert extract_addresses(text) == ["90210"]


def test_zip_on_first_line_does_not_wrap_around():
    text = "Austin TX 73301\nsecond line"
    assert extract_addresses(text) == ["Austin TX 73301, second line"]


def test_extract_contact_info_on_plain_text():
    info = extract_contact_info("Thanks for the help!")
    assert info.emails == []
    assert info.phones == []
    assert info.addresses == []
