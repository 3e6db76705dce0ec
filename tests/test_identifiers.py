"""Tests for GUID derivation, file-id allocation and name helpers."""

import pytest

from usdunity.identifiers import FileIdAllocator, derive_guid, is_guid
from usdunity.naming import sanitize_filename, sanitize_name, unique_name


class TestGuids:
    def test_deterministic(self):
        assert derive_guid("usdunity", "Scene/World/Cube:mesh") == derive_guid("usdunity", "Scene/World/Cube:mesh")

    def test_well_formed(self):
        assert is_guid(derive_guid("usdunity", "anything"))

    def test_namespace_and_key_both_matter(self):
        base = derive_guid("usdunity", "a")
        assert derive_guid("other", "a") != base
        assert derive_guid("usdunity", "b") != base

    @pytest.mark.parametrize("value", ["", "ABCDEF0123456789ABCDEF0123456789", "123", None, 42])
    def test_rejects_malformed(self, value):
        assert not is_guid(value)


class TestFileIdAllocator:
    def test_allocates_increasing_ids(self):
        allocator = FileIdAllocator()
        assert [allocator.allocate() for _ in range(3)] == [1, 2, 3]

    def test_skips_reserved_ids(self):
        allocator = FileIdAllocator()
        allocator.reserve(2)
        assert [allocator.allocate() for _ in range(2)] == [1, 3]

    def test_zero_is_reserved(self):
        with pytest.raises(ValueError):
            FileIdAllocator().reserve(0)
        with pytest.raises(ValueError):
            FileIdAllocator(start=0)

    def test_duplicate_reservation(self):
        allocator = FileIdAllocator()
        allocator.reserve(5)
        with pytest.raises(ValueError):
            allocator.reserve(5)


class TestNaming:
    def test_sanitize_name(self):
        assert sanitize_name("My Cube (1)") == "My_Cube_1"
        assert sanitize_name("3D") == "_3D"
        assert sanitize_name("", "Fallback") == "Fallback"

    def test_sanitize_filename_keeps_spaces(self):
        assert sanitize_filename("Door: Left/Right") == "Door_ Left_Right"
        assert sanitize_filename("   ", "Mesh") == "Mesh"

    def test_unique_name(self):
        used = {}
        names = [unique_name("Cube", used) for _ in range(3)]
        assert names == ["Cube", "Cube_1", "Cube_2"]

    def test_unique_name_avoids_existing_suffix(self):
        used = {}
        assert unique_name("Cube_1", used) == "Cube_1"
        assert unique_name("Cube", used) == "Cube"
        assert unique_name("Cube", used) == "Cube_2"
