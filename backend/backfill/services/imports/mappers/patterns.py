"""
Regex shapes shared by the export row models.
"""

EMPTY = r"^$"
UUID = r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"
COUNTRY_CODE = r"^[A-Z]{2}$"
REGION_CODE = r"^[A-Z]{2}-[A-Z0-9]{1,3}$"
SCREEN_SIZE = r"^\d{1,5}x\d{1,5}$"
DIGITS = r"^\d{1,5}$"
CREATED_AT = r"^\d{4}-(0[1-9]|1[0-2])-(0[1-9]|[12]\d|3[01]) ([01]\d|2[0-3]):[0-5]\d:[0-5]\d$"
ISO_DATETIME = (
    r"^\d{4}-(0[1-9]|1[0-2])-(0[1-9]|[12]\d|3[01])T([01]\d|2[0-3]):[0-5]\d:[0-5]\d"
    r"(\.\d{1,6})?(Z|[+-]\d{2}:\d{2})?$"
)
