APP_NAME = "recordstage"
VERSION = "0.1.0"

# Natural identifier member of every record
ID_FIELD = "id"

# Largest string the target VARCHAR / JSON columns accept
MAX_VALUE_LENGTH = 65535

# Size in characters at which a pending INSERT statement is sent
INSERT_FLUSH_THRESHOLD = 10_000_000

DEFAULT_TENANT_ID = 1

# Empty namespace used for identifier-reference columns
GLOBAL_NAMESPACE = ""

LOADING_TABLE_SUFFIX = "_loading"
HISTORY_TABLE_SUFFIX = "_history"
LATEST_HISTORY_TABLE_SUFFIX = "_latest_history"

PAGE_COUNT_SUFFIX = "_count.txt"
PAGE_FILE_SUFFIX = ".json"
TEST_PAGE_SUFFIX = "_test.json"

READ_BUFFER_SIZE = 65536

DEFAULT_ANONYMIZE_RULES = {
    "user_users": [
        "/barcode",
        "/externalSystemId",
        "/username",
        "/personal/lastName",
        "/personal/firstName",
        "/personal/middleName",
        "/personal/email",
        "/personal/phone",
        "/personal/mobilePhone",
        "/personal/dateOfBirth",
        "/personal/addresses/*/addressLine1",
        "/personal/addresses/*/addressLine2",
        "/personal/addresses/*/city",
        "/personal/addresses/*/region",
        "/personal/addresses/*/postalCode",
        "/personal/addresses/*/countryId",
    ],
}
