import unittest

from admin_backend.dropdowns import DropdownService, normalize_dropdown_type
from admin_backend.errors import ConflictError, InUseError, NotFoundError, ValidationError
from admin_backend.replication import ReplicationEngine
from admin_backend.tests.support import BackendTestCase
from admin_backend.unique_codes import UniqueCodeGenerator


class DropdownServiceTests(BackendTestCase):
    async def asyncSetUp(self):
        await super().asyncSetUp()
        repo = self.backend.dropdowns
        engine = ReplicationEngine(
            repo,
            self.directory,
            UniqueCodeGenerator(repo),
            self.files,
            bucket="dropdowns",
            file_prefix="dropdown",
        )
        self.service = DropdownService(repo, self.directory, engine)

    async def test_create_replicates_and_returns_requested_language(self):
        option = await self.service.create("Category", "Technology", language="es")

        self.assertEqual(option.dropdown_type, "category")
        self.assertEqual(option.language.folder, "es")
        siblings = await self.backend.dropdowns.get_all({"unique_code": option.unique_code})
        self.assertEqual(len(siblings), 2)
        self.assertEqual({s.name for s in siblings}, {"Technology"})

    async def test_duplicate_name_is_refused_before_writing(self):
        await self.service.create("category", "Technology")

        with self.assertRaises(ConflictError):
            await self.service.create("category", "  technology ")
        self.assertEqual(await self.backend.dropdowns.count(), 2)

        # Same name in another type is fine.
        await self.service.create("industry", "Technology")
        self.assertEqual(await self.backend.dropdowns.count(), 4)

    async def test_invalid_input(self):
        with self.assertRaises(ValidationError):
            normalize_dropdown_type("bad type!")
        with self.assertRaises(ValidationError):
            await self.service.create("category", "   ")
        with self.assertRaises(ValidationError):
            await self.service.create("category", "Art", language="xx")

    async def test_list_public_only_active_in_language(self):
        art = await self.service.create("category", "Art")
        await self.service.create("category", "Music")
        await self.service.update("category", art.public_id, status=False)

        options = await self.service.list_public("category", "en")
        self.assertEqual([o.name for o in options], ["Music"])
        spanish = await self.service.list_public("category", "es")
        self.assertEqual(sorted(o.name for o in spanish), ["Art", "Music"])

    async def test_list_admin_paginates(self):
        for name in ("Art", "Music", "Film"):
            await self.service.create("category", name)

        page = await self.service.list_admin("category", page=1, limit=2, language="en")
        self.assertEqual(len(page.items), 2)
        self.assertEqual(page.pagination.total_count, 3)
        everything = await self.service.list_admin("category", limit=10)
        self.assertEqual(everything.pagination.total_count, 6)

        with self.assertRaises(ValidationError):
            await self.service.list_admin("category", limit=101)

    async def test_get_checks_type(self):
        option = await self.service.create("category", "Art")
        self.assertEqual((await self.service.get("category", option.public_id)).name, "Art")
        with self.assertRaises(NotFoundError):
            await self.service.get("industry", option.public_id)

    async def test_update_renames_one_language(self):
        option = await self.service.create("category", "Art", language="es")
        await self.service.create("category", "Music")

        renamed = await self.service.update("category", option.public_id, name="Arte")
        self.assertEqual(renamed.name, "Arte")
        english = await self.service.list_public("category", "en")
        self.assertIn("Art", [o.name for o in english])

        with self.assertRaises(ConflictError):
            await self.service.update("category", option.public_id, name="music")

    async def test_delete_by_unique_code(self):
        option = await self.service.create("category", "Art")

        with self.assertRaises(ValidationError):
            await self.service.delete_by_unique_code("industry", option.unique_code)
        with self.assertRaises(NotFoundError):
            await self.service.delete_by_unique_code("category", 1)

        deletion = await self.service.delete_by_unique_code("category", option.unique_code)
        self.assertEqual(deletion.count, 2)
        self.assertEqual(await self.backend.dropdowns.count(), 0)

    async def test_delete_refused_when_used(self):
        option = await self.service.create("category", "Technology")
        await self.service.increment_use_count(option.public_id, 3)

        with self.assertRaises(InUseError):
            await self.service.delete_by_unique_code("category", option.unique_code)
        self.assertEqual(await self.backend.dropdowns.count(), 2)

    async def test_bulk_operation(self):
        art = await self.service.create("category", "Art")
        music = await self.service.create("category", "Music")

        count = await self.service.bulk_operation(
            "category", "deactivate", [art.public_id, music.public_id]
        )
        self.assertEqual(count, 2)
        self.assertEqual(await self.service.list_public("category", "en"), [])

        count = await self.service.bulk_operation("category", "activate", [art.public_id])
        self.assertEqual(count, 1)

        with self.assertRaises(ValidationError):
            await self.service.bulk_operation("category", "archive", [art.public_id])
        with self.assertRaises(NotFoundError):
            await self.service.bulk_operation("category", "delete", ["missing"])
        with self.assertRaises(ValidationError):
            await self.service.bulk_operation("category", "delete", [])


if __name__ == "__main__":
    unittest.main()
