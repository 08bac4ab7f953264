# votesecure/admin/voter_list.py
"""Bulk import of an election's eligible-voter list from CSV or Excel.

Rows are upserted on (election, e-mail), so importing the same file twice
leaves the same set of eligible voters. ``has_registered`` is never cleared
by an import: voters registered by hand stay registered.
"""

import csv
import io
import logging
import os
import zipfile
from dataclasses import dataclass, field
from typing import List
from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException
from sqlalchemy.exc import SQLAlchemyError
from votesecure.database.models import Election, EligibleVoter, normalize_email, utcnow
from votesecure.errors import NotFoundError, PersistenceError, ValidationError
from votesecure.security.input_validator import InputValidator

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = ('.csv', '.xlsx')
MAX_ROW_ERRORS = 50


@dataclass
class RowError:
    row: int
    email: str
    reason: str


@dataclass
class BatchImportReport:
    total: int = 0
    inserted: int = 0
    updated: int = 0
    skipped: int = 0
    errors: List[RowError] = field(default_factory=list)
    errors_truncated: bool = False

    def add_error(self, row, email, reason):
        self.skipped += 1
        if len(self.errors) < MAX_ROW_ERRORS:
            self.errors.append(RowError(row, email, reason))
        else:
            self.errors_truncated = True

    def to_dict(self):
        return {
            'total': self.total,
            'inserted': self.inserted,
            'updated': self.updated,
            'skipped': self.skipped,
            'errors': [vars(error) for error in self.errors],
            'errors_truncated': self.errors_truncated,
        }


def _read_csv(data):
    text = data.decode('utf-8-sig', errors='replace')
    return list(csv.reader(io.StringIO(text)))


def _read_xlsx(data):
    try:
        workbook = load_workbook(io.BytesIO(data), read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError, ValueError) as e:
        raise ValidationError(f"Could not read Excel file: {e}")
    try:
        sheet = workbook.active
        return [['' if cell is None else str(cell) for cell in row]
                for row in sheet.iter_rows(values_only=True)]
    finally:
        workbook.close()


class VoterListImporter:
    def __init__(self, session):
        self.session = session
        self.validator = InputValidator()

    def _now(self):
        return utcnow()

    def parse_rows(self, filename, data):
        """Return ``[(row_number, name, email), ...]``; row 1 is the header."""
        extension = os.path.splitext(filename or '')[1].lower()
        if extension not in ALLOWED_EXTENSIONS:
            raise ValidationError("Invalid file type. Only CSV and Excel (.xlsx) files are allowed")

        rows = _read_csv(data) if extension == '.csv' else _read_xlsx(data)
        if not rows:
            raise ValidationError("The uploaded file is empty")

        headers = [str(h or '').strip().lower() for h in rows[0]]
        if 'name' not in headers or 'email' not in headers:
            raise ValidationError('File must contain "name" and "email" columns')
        name_index, email_index = headers.index('name'), headers.index('email')

        parsed = []
        for row_number, row in enumerate(rows[1:], start=2):
            if not any(str(cell or '').strip() for cell in row):
                continue
            name = row[name_index].strip() if name_index < len(row) else ''
            email = row[email_index] if email_index < len(row) else ''
            parsed.append((row_number, name, email))
        return parsed

    def process_voter_list(self, election_id, filename, data, replace_existing=False):
        election_key = self.validator.parse_positive_int(election_id)
        if election_key is None:
            raise ValidationError("Election ID is required")
        election = self.session.get(Election, election_key)
        if election is None:
            raise NotFoundError("Election not found")
        if self._now() >= election.start_date and not replace_existing:
            raise ValidationError("Cannot update voter list after election has started")

        rows = self.parse_rows(filename, data)
        report = BatchImportReport(total=len(rows))

        try:
            if replace_existing:
                removed = (self.session.query(EligibleVoter)
                           .filter(EligibleVoter.election_id == election.id,
                                   EligibleVoter.has_registered.is_(False))
                           .delete(synchronize_session=False))
                logger.info("Removed %s unregistered eligible voters from election %s", removed, election.id)

            seen = set()
            for row_number, name, raw_email in rows:
                email = normalize_email(raw_email)
                if not name or not email:
                    report.add_error(row_number, email, 'Missing name or email')
                    continue
                if not self.validator.validate_email(email):
                    report.add_error(row_number, email, 'Invalid email format')
                    continue
                if email in seen:
                    report.add_error(row_number, email, 'Duplicate email in file')
                    continue
                seen.add(email)
                self._upsert(election.id, self.validator.sanitize_string(name), email, report)

            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error("Voter list import failed for election %s: %s", election.id, e)
            raise PersistenceError("Failed to import voter list. Please try again.")

        logger.info("Voter list import for election %s: %s inserted, %s updated, %s skipped",
                    election.id, report.inserted, report.updated, report.skipped)
        return report

    def _upsert(self, election_id, name, email, report):
        entry = (self.session.query(EligibleVoter)
                 .filter_by(election_id=election_id, email=email)
                 .first())
        if entry is None:
            self.session.add(EligibleVoter(election_id=election_id, name=name, email=email,
                                           active=True, has_registered=False))
            report.inserted += 1
        else:
            entry.name = name
            entry.active = True
            report.updated += 1
