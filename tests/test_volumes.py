"""Tests for locating the volume created by a disk import."""
from pveprov.services.proxmox.volumes import (
    Resolution,
    from_import_output,
    resolve_imported_volume,
    slot_holding,
    unused_slots,
)


def _no_config():
    raise AssertionError("config should not be consulted")


class TestImportOutput:
    def test_direct_with_slot(self):
        result = from_import_output("Successfully imported disk as 'unused0:local-lvm:vm-100-disk-1'")

        assert result.outcome is Resolution.FOUND_DIRECT
        assert result.volume == 'local-lvm:vm-100-disk-1'
        assert result.slot == 'unused0'

    def test_direct_without_slot(self):
        result = from_import_output("Successfully imported disk as 'local:100/vm-100-disk-0.raw'")

        assert result.volume == 'local:100/vm-100-disk-0.raw'
        assert result.slot is None

    def test_unrecognised_output(self):
        assert from_import_output("transferred 1.0 GiB").outcome is Resolution.NOT_FOUND
        assert from_import_output("").outcome is Resolution.NOT_FOUND


class TestResolve:
    def test_direct_result_skips_config(self):
        result = resolve_imported_volume(
            "Successfully imported disk as 'unused0:local-lvm:vm-100-disk-1'", _no_config,
        )

        assert result.outcome is Resolution.FOUND_DIRECT

    def test_fallback_to_lowest_unused_slot(self):
        config = {
            'name': 'talos',
            'unused2': 'local-lvm:vm-100-disk-3',
            'unused1': 'local-lvm:vm-100-disk-2',
        }

        result = resolve_imported_volume("done", lambda: config)

        assert result.outcome is Resolution.FOUND_FALLBACK
        assert result.slot == 'unused1'
        assert result.volume == 'local-lvm:vm-100-disk-2'

    def test_unused10_sorts_after_unused2(self):
        config = {'unused10': 'a:10', 'unused2': 'a:2'}

        assert list(unused_slots(config)) == ['unused2', 'unused10']

    def test_not_found(self):
        result = resolve_imported_volume("done", lambda: {'scsi0': 'local-lvm:vm-100-disk-0'})

        assert result.outcome is Resolution.NOT_FOUND
        assert not result.found


class TestSlotHolding:
    def test_matches_volume_ignoring_options(self):
        config = {'unused0': 'local-lvm:vm-100-disk-1,size=2G'}

        assert slot_holding(config, 'local-lvm:vm-100-disk-1') == 'unused0'

    def test_no_match(self):
        assert slot_holding({'scsi0': 'local-lvm:vm-100-disk-1'}, 'local-lvm:vm-100-disk-1') is None
