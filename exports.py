"""
CSV export of dashboard tables
"""

import io
import csv


def rows_to_csv(rows, fieldnames=None):
    """
    Serialise a list of dicts to CSV text.
    The header comes from fieldnames, or the first row's keys. No rows and
    no fieldnames gives an empty string.
    """
    rows = list(rows)
    if fieldnames is None:
        if not rows:
            return ''
        fieldnames = list(rows[0].keys())

    output = io.StringIO()
    writer = csv.DictWriter(output, fieldnames=fieldnames, extrasaction='ignore')
    writer.writeheader()
    for row in rows:
        writer.writerow(row)
    return output.getvalue()


def records_to_csv(records, fieldnames=None):
    """CSV for records or report rows (anything with to_dict)"""
    return rows_to_csv([record.to_dict() for record in records], fieldnames)
