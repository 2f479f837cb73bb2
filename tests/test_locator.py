"""Tests for id allocation and storage selection."""
from dataclasses import replace

import pytest

from conftest import FakeHost, storage_table
from pveprov.core.errors import ConflictError
from pveprov.models.request import StorageKind
from pveprov.services.proxmox.host import parse_storage_status
from pveprov.services.proxmox.locator import ResourceLocator


class TestStorageParsing:
    def test_inactive_backends_are_dropped(self):
        output = storage_table(('local-lvm', 'lvmthin'), ('nas', 'nfs', 'inactive'))

        targets = parse_storage_status(output)

        assert [t.name for t in targets] == ['local-lvm']

    @pytest.mark.parametrize('storage_type,kind', [
        ('lvmthin', StorageKind.BLOCK),
        ('zfspool', StorageKind.BLOCK),
        ('dir', StorageKind.FILE),
        ('cephfs', StorageKind.FILE),
        ('rbd', StorageKind.NETWORK),
        ('something-new', StorageKind.FILE),
    ])
    def test_kind_classification(self, storage_type, kind):
        [target] = parse_storage_status(storage_table(('s', storage_type)))
        assert target.kind is kind


class TestAllocateId:
    def test_next_free_id(self, vm_request):
        host = FakeHost(next_id="104\n")

        target = ResourceLocator(host).locate(vm_request)

        assert target.vmid == 104

    def test_explicit_free_id_is_kept(self, vm_request):
        host = FakeHost(existing={100})

        target = ResourceLocator(host).locate(replace(vm_request, vmid=250))

        assert target.vmid == 250
        assert not host.ran('pvesh')

    def test_explicit_id_in_use(self, vm_request):
        host = FakeHost(existing={250})

        with pytest.raises(ConflictError, match="250 in use"):
            ResourceLocator(host).locate(replace(vm_request, vmid=250))

    def test_allocator_failure(self, vm_request):
        host = FakeHost(failures={'pvesh get /cluster/nextid': "cluster not ready"})

        with pytest.raises(ConflictError, match="could not allocate"):
            ResourceLocator(host).locate(vm_request)

    def test_allocator_garbage_output(self, vm_request):
        host = FakeHost(next_id="oops\n")

        with pytest.raises(ConflictError):
            ResourceLocator(host).locate(vm_request)


class TestSelectStorage:
    def test_queries_content_type_for_kind(self, vm_request, container_request):
        host = FakeHost()
        locator = ResourceLocator(host)

        locator.locate(vm_request)
        locator.locate(container_request)

        assert host.ran('pvesm status -content images')
        assert host.ran('pvesm status -content rootdir')

    def test_no_eligible_storage(self, vm_request):
        host = FakeHost(storage=storage_table())

        with pytest.raises(ConflictError, match="no eligible storage"):
            ResourceLocator(host).locate(vm_request)

    def test_all_backends_inactive(self, vm_request):
        host = FakeHost(storage=storage_table(('local-lvm', 'lvmthin', 'disabled')))

        with pytest.raises(ConflictError, match="no eligible storage"):
            ResourceLocator(host).locate(vm_request)

    def test_preferred_storage_wins_without_chooser(self, vm_request):
        host = FakeHost(storage=storage_table(('local', 'dir'), ('local-lvm', 'lvmthin')))

        target = ResourceLocator(host).locate(vm_request)

        assert target.storage.name == 'local-lvm'

    def test_first_backend_when_preferred_missing(self, vm_request):
        host = FakeHost(storage=storage_table(('tank', 'zfspool'), ('local', 'dir')))

        target = ResourceLocator(host).locate(vm_request)

        assert target.storage.name == 'tank'

    def test_explicit_storage(self, vm_request):
        host = FakeHost(storage=storage_table(('local', 'dir'), ('local-lvm', 'lvmthin')))

        target = ResourceLocator(host).locate(replace(vm_request, storage='local'))

        assert target.storage.name == 'local'
        assert target.storage.needs_raw_import

    def test_explicit_storage_not_eligible(self, vm_request):
        host = FakeHost()

        with pytest.raises(ConflictError, match="'nas' is not an active backend"):
            ResourceLocator(host).locate(replace(vm_request, storage='nas'))

    def test_chooser_called_for_multiple_backends(self, vm_request):
        host = FakeHost(storage=storage_table(('local', 'dir'), ('local-lvm', 'lvmthin')))
        asked = []

        def chooser(label, choices, default):
            asked.append((choices, default))
            return 'local'

        target = ResourceLocator(host, chooser=chooser).locate(vm_request)

        assert asked == [(['local', 'local-lvm'], 'local-lvm')]
        assert target.storage.name == 'local'

    def test_chooser_not_called_for_single_backend(self, vm_request):
        def chooser(label, choices, default):
            raise AssertionError("should not prompt")

        target = ResourceLocator(FakeHost(), chooser=chooser).locate(vm_request)

        assert target.storage.name == 'local-lvm'

    def test_unknown_choice_is_reasked(self, vm_request):
        host = FakeHost(storage=storage_table(('local', 'dir'), ('local-lvm', 'lvmthin')))
        answers = ['nas', ' local ']

        target = ResourceLocator(host, chooser=lambda label, choices, default: answers.pop(0)).locate(vm_request)

        assert target.storage.name == 'local'
        assert answers == []
