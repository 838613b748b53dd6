from fiscal_sync.classification.models import Direction
from fiscal_sync.parser.xml_reader import only_digits


def classify_direction(company_tax_id: str, sender_tax_id: str) -> Direction:
    """Issued when the tenant is the sender, received otherwise.

    Both IDs are compared digits-only, so formatted CNPJ/CPF values match
    their bare form. An empty ID never matches.
    """
    company = only_digits(company_tax_id)
    sender = only_digits(sender_tax_id)
    if company and company == sender:
        return Direction.ISSUED
    return Direction.RECEIVED
