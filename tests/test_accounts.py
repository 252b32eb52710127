import json

import pytest

from coti_mcp.accounts import (
    PENDING_AES_KEY,
    REDACTED,
    BackupDocument,
    Credential,
    CredentialStore,
    mask_secret,
)
from coti_mcp.config import AccountSettings
from coti_mcp.errors import AccountNotFoundError, GenerationFailedError, InvalidBackupError
from conftest import ADDRESS_A, ADDRESS_B, ADDRESS_NEW, AES_A, AES_B, KEY_A, KEY_B, StubClient


def _triples(store):
    return {(c.address.lower(), c.private_key, c.aes_key) for c in (store.get(a) for a in store.addresses)}


def test_mask_secret_reveals_first_and_last_four():
    assert mask_secret("0x1234567890abcdef") == "0x12...cdef"
    assert mask_secret("123456789") == "1234...6789"


def test_mask_secret_short_and_empty_values_use_placeholder():
    assert mask_secret("12345678") == "****"
    assert mask_secret("abc") == "****"
    assert mask_secret("") == "****"
    assert mask_secret(None) == "****"


def test_get_without_default_falls_back_to_first(store):
    assert store.default_address is None
    assert store.get().address == ADDRESS_A


def test_get_uses_default_pointer(store):
    store.set_default(ADDRESS_B)
    assert store.get().address == ADDRESS_B


def test_lookup_is_case_insensitive(store):
    assert store.get(ADDRESS_A.lower()).private_key == KEY_A
    assert store.get(ADDRESS_A.upper().replace("0X", "0x")).aes_key == AES_A
    assert ADDRESS_A.lower() in store


def test_get_unknown_address_raises(store):
    with pytest.raises(AccountNotFoundError) as excinfo:
        store.get("0x9999999999999999999999999999999999999999")
    assert "No keys found for account" in excinfo.value.message


def test_get_on_empty_store_raises():
    with pytest.raises(AccountNotFoundError):
        CredentialStore().get()


def test_set_default_rejects_unknown_and_keeps_pointer(store):
    store.set_default(ADDRESS_B)
    with pytest.raises(AccountNotFoundError):
        store.set_default(ADDRESS_NEW)
    assert store.default_address == ADDRESS_B


def test_set_default_stores_registered_spelling(store):
    assert store.set_default(ADDRESS_A.lower()) == ADDRESS_A
    assert store.default_address == ADDRESS_A


def test_from_settings_keeps_order_and_default():
    settings = AccountSettings(
        addresses=[ADDRESS_A, ADDRESS_B],
        private_keys=[KEY_A, KEY_B],
        aes_keys=[AES_A, AES_B],
        current_address=ADDRESS_B,
    )
    store = CredentialStore.from_settings(settings)
    assert store.addresses == [ADDRESS_A, ADDRESS_B]
    assert store.get().address == ADDRESS_B


def test_repeated_address_is_reported(caplog):
    with caplog.at_level("WARNING", logger="coti_mcp.accounts"):
        store = CredentialStore(
            [
                Credential(address=ADDRESS_A, private_key=KEY_A, aes_key=AES_A),
                Credential(address=ADDRESS_A.lower(), private_key=KEY_B, aes_key=AES_B),
            ]
        )
    assert len(store) == 1
    assert store.get().private_key == KEY_B
    assert "given more than once" in caplog.text


def test_list_accounts_masks_and_marks_default(store):
    summaries = store.list_accounts()
    assert [s.index for s in summaries] == [1, 2]
    assert summaries[0].is_default is True
    assert summaries[1].is_default is False
    assert summaries[0].private_key == mask_secret(KEY_A)
    assert KEY_A not in json.dumps([s.to_dict() for s in summaries])


def test_create_appends_with_placeholder_aes_key(store):
    credential = store.create(StubClient.create_random_keypair)
    assert credential.address == ADDRESS_NEW
    assert credential.aes_key == PENDING_AES_KEY
    assert store.addresses[-1] == ADDRESS_NEW
    assert store.get().address == ADDRESS_A


def test_create_can_set_default(store):
    store.create(StubClient.create_random_keypair, set_as_default=True)
    assert store.get().address == ADDRESS_NEW


def test_records_stay_complete_across_create_and_import(store):
    store.create(StubClient.create_random_keypair)
    assert all(c.private_key and c.aes_key for c in (store.get(a) for a in store.addresses))
    store.import_backup(store.export_backup().to_json(), merge=True)
    assert len(_triples(store)) == len(store) == 3


@pytest.mark.asyncio
async def test_generate_aes_key_updates_record(store):
    client = StubClient()
    credential = await store.generate_aes_key(ADDRESS_B, client)
    assert credential.aes_key == client.aes_key
    assert store.get(ADDRESS_B).aes_key == client.aes_key
    assert client.calls == [("generate_or_recover_aes_key", KEY_B)]


@pytest.mark.asyncio
async def test_generate_aes_key_empty_result_fails(store):
    client = StubClient()
    client.aes_key = ""
    with pytest.raises(GenerationFailedError):
        await store.generate_aes_key(ADDRESS_A, client)
    assert store.get(ADDRESS_A).aes_key == AES_A


@pytest.mark.asyncio
async def test_generate_aes_key_non_string_result_fails(store):
    client = StubClient()
    client.aes_key = 1234
    with pytest.raises(GenerationFailedError) as excinfo:
        await store.generate_aes_key(ADDRESS_A, client)
    assert excinfo.value.message == "AES key is not a string"


@pytest.mark.asyncio
async def test_generate_aes_key_unknown_account(store):
    with pytest.raises(AccountNotFoundError):
        await store.generate_aes_key(ADDRESS_NEW, StubClient())


def test_export_filter_is_case_insensitive(store):
    document = store.export_backup([ADDRESS_B.upper().replace("0X", "0x")])
    assert [entry.address for entry in document.accounts] == [ADDRESS_B]


def test_export_filter_without_matches_exports_all(store):
    document = store.export_backup([ADDRESS_NEW])
    assert len(document.accounts) == 2


def test_export_without_secrets_is_redacted(store):
    document = store.export_backup(include_secrets=False)
    assert all(entry.private_key == REDACTED and entry.aes_key == REDACTED for entry in document.accounts)
    assert document.accounts[0].is_default is True
    assert document.timestamp.endswith("Z")


def test_export_import_round_trip_replace(store):
    store.set_default(ADDRESS_B)
    exported = store.export_backup().to_json()
    expected = _triples(store)

    restored = CredentialStore()
    summary = restored.import_backup(exported, merge=False)
    assert _triples(restored) == expected
    assert restored.get().address == ADDRESS_B
    assert summary.imported == 2
    assert summary.total_after == 2
    assert summary.merged is False


def test_import_accepts_formatted_export_text(store):
    text = "=== COTI ACCOUNTS BACKUP (JSON FORMAT) ===\n\n" + store.export_backup().to_json() + "\nWARNING: keep safe"
    restored = CredentialStore()
    restored.import_backup(text, merge=False)
    assert restored.addresses == [ADDRESS_A, ADDRESS_B]


def test_redacted_import_is_rejected_and_store_untouched(store):
    before = _triples(store)
    backup = {
        "timestamp": "2025-06-03T17:18:55.123Z",
        "accounts": [
            {"address": ADDRESS_NEW, "private_key": "0x" + "dd" * 32, "aes_key": "d4" * 16, "is_default": False},
            {"address": ADDRESS_B, "private_key": REDACTED, "aes_key": AES_B, "is_default": True},
        ],
    }
    for merge in (True, False):
        with pytest.raises(InvalidBackupError):
            store.import_backup(json.dumps(backup), merge=merge)
        assert _triples(store) == before
        assert store.default_address is None


@pytest.mark.parametrize(
    "raw",
    [
        "no json here",
        "{not json}",
        json.dumps({"accounts": "nope"}),
        json.dumps({"accounts": []}),
        json.dumps({"accounts": [{"private_key": "k", "aes_key": "a"}]}),
        json.dumps({"accounts": [{"address": ADDRESS_A, "private_key": "k"}]}),
    ],
)
def test_malformed_backups_are_rejected(raw):
    with pytest.raises(InvalidBackupError):
        BackupDocument.parse(raw)


def test_merge_overwrites_existing_record():
    store = CredentialStore([Credential(address=ADDRESS_A, private_key="k1", aes_key="s1")])
    backup = {"accounts": [{"address": ADDRESS_A.lower(), "private_key": "k2", "aes_key": "s2"}]}
    summary = store.import_backup(backup, merge=True)
    assert len(store) == 1
    assert store.get(ADDRESS_A).private_key == "k2"
    assert store.get(ADDRESS_A).aes_key == "s2"
    assert store.get(ADDRESS_A).address == ADDRESS_A
    assert summary.total_after == 1


def test_merge_keeps_current_default(store):
    backup = {"accounts": [{"address": ADDRESS_NEW, "private_key": "k", "aes_key": "s", "is_default": True}]}
    summary = store.import_backup(backup, merge=True)
    assert summary.default_address == ADDRESS_A
    assert store.addresses == [ADDRESS_A, ADDRESS_B, ADDRESS_NEW]


def test_merge_into_empty_store_uses_flagged_default():
    store = CredentialStore()
    backup = {
        "accounts": [
            {"address": ADDRESS_A, "private_key": "k", "aes_key": "s"},
            {"address": ADDRESS_B, "private_key": "k", "aes_key": "s", "is_default": True},
        ]
    }
    store.import_backup(backup, merge=True)
    assert store.get().address == ADDRESS_B


def test_replace_without_flag_defaults_to_first_entry(store):
    backup = {
        "accounts": [
            {"address": ADDRESS_NEW, "private_key": "k", "aes_key": "s"},
            {"address": ADDRESS_B, "private_key": "k", "aes_key": "s"},
        ]
    }
    store.import_backup(backup, merge=False)
    assert store.addresses == [ADDRESS_NEW, ADDRESS_B]
    assert store.get().address == ADDRESS_NEW


def test_preferred_default_wins(store):
    backup = {"accounts": [{"address": ADDRESS_NEW, "private_key": "k", "aes_key": "s"}]}
    summary = store.import_backup(backup, merge=True, preferred_default=ADDRESS_NEW.upper().replace("0X", "0x"))
    assert summary.default_address == ADDRESS_NEW


def test_unknown_preferred_default_leaves_store_untouched(store):
    before = _triples(store)
    backup = {"accounts": [{"address": ADDRESS_NEW, "private_key": "k", "aes_key": "s"}]}
    with pytest.raises(AccountNotFoundError):
        store.import_backup(backup, merge=False, preferred_default=ADDRESS_A)
    assert _triples(store) == before
