"""Shared serialization for the payment/certificate/certification columns.

Documents and blotter entries carry the same processing fields; each model
declares its own columns (defaults differ) and reuses this serializer.
"""


def iso(value):
    return value.isoformat() if value else None


class ProcessingFieldsMixin:
    """Expose payment, certificate and certification columns in API shape."""

    def processing_dict(self) -> dict:
        return {
            'paymentMethod': self.payment_method,
            'paymentStatus': self.payment_status,
            'paymentProofUrl': self.payment_proof_url,
            'certificateUrl': self.certificate_url,
            'certificateFileName': self.certificate_filename,
            'crimeRecordStatus': self.crime_record_status,
            'certificationCount': self.certification_count or 0,
        }
