import re

from attr import dataclass, field
from pulumi_azure_native import storage

from vmbuilder.resource_ref import ResourceId, ResourceType

STORAGE_ACCOUNTS = ResourceType("Microsoft.Storage/storageAccounts")

STORAGE_NAME_MIN_LENGTH = 3
STORAGE_NAME_MAX_LENGTH = 24


class StorageNameError(ValueError):
    pass


def sanitise_storage(name: str) -> str:
    """
    Lowercases `name`, drops everything that isn't a letter or digit and
    truncates the result to the maximum storage account name length.
    """
    return "".join(c for c in name.lower() if c.isalnum())[
        :STORAGE_NAME_MAX_LENGTH
    ]


@dataclass(frozen=True)
class StorageAccountName:
    value: str

    def __attrs_post_init__(self):
        if not re.match(
            rf"^[a-z0-9]{{{STORAGE_NAME_MIN_LENGTH},{STORAGE_NAME_MAX_LENGTH}}}$",
            self.value,
        ):
            raise StorageNameError(
                f"Storage account name '{self.value}' is invalid. It must be between {STORAGE_NAME_MIN_LENGTH} and {STORAGE_NAME_MAX_LENGTH} lowercase letters or numbers."  # noqa: E501
            )

    @classmethod
    def create(cls, name: str) -> "StorageAccountName":
        """
        Builds a valid storage account name out of `name`.

        Raises:
            StorageNameError: When too few usable characters remain.
        """
        return cls(sanitise_storage(name))

    def __str__(self) -> str:
        return self.value


class StorageAccountDefaults:
    """
    Properties applied to storage accounts created for boot diagnostics.
    """

    kind: storage.Kind = storage.Kind.STORAGE_V2
    minimum_tls_version: storage.MinimumTlsVersion = (
        storage.MinimumTlsVersion.TLS1_2
    )
    allow_blob_public_access: bool = False
    sku: storage.SkuName = storage.SkuName.STANDARD_LRS


@dataclass(frozen=True)
class StorageAccount:
    name: StorageAccountName
    location: str
    sku: storage.SkuName = StorageAccountDefaults.sku
    kind: storage.Kind = StorageAccountDefaults.kind
    tags: dict[str, str] = field(factory=dict)

    @property
    def resource_id(self) -> ResourceId:
        return STORAGE_ACCOUNTS.resource_id(self.name.value)

    @property
    def dependencies(self) -> list[ResourceId]:
        return []


def blob_endpoint(account_name: str) -> str:
    return f"https://{account_name}.blob.core.windows.net/"
