import unittest

from admin_backend.errors import ConflictError, NotFoundError, ValidationError
from admin_backend.persistence.port import PaginationOptions, QueryOptions
from admin_backend.tests.support import BackendTestCase


class SqlRepositoryTests(BackendTestCase):
    async def asyncSetUp(self):
        await super().asyncSetUp()
        self.repo = self.backend.dropdowns
        self.en = self.langs["en"]
        self.es = self.langs["es"]

    async def _option(self, name, code, language=None, **extra):
        language = language or self.en
        return await self.repo.insert(
            {
                "name": name,
                "dropdown_type": "category",
                "unique_code": code,
                "language_id": language.id,
                **extra,
            }
        )

    async def test_insert_applies_defaults_and_identifiers(self):
        option = await self._option("Technology", 1000000001)
        self.assertTrue(option.id)
        self.assertTrue(option.public_id)
        self.assertTrue(option.status)
        self.assertEqual(option.use_count, 0)
        self.assertGreater(option.created_at, 0)
        self.assertEqual(option.created_at, option.updated_at)

    async def test_get_all_with_select_and_populate(self):
        await self._option("Technology", 1000000001)
        await self._option("Tecnología", 1000000001, language=self.es)

        records = await self.repo.get_all(
            {"unique_code": 1000000001},
            QueryOptions(select=["name"], populate=["language"], sort={"name": 1}),
        )
        self.assertEqual([r.name for r in records], ["Technology", "Tecnología"])
        self.assertEqual(records[0].language.folder, "en")
        self.assertEqual(records[1].language.folder, "es")
        # Unselected columns fall back to defaults.
        self.assertEqual(records[0].dropdown_type, "")

    async def test_contains_and_case_insensitive_equality(self):
        await self._option("50% off", 1000000001)
        await self._option("500 items", 1000000002)

        matches = await self.repo.get_all({"name": {"$contains": "0%"}})
        self.assertEqual([m.name for m in matches], ["50% off"])

        self.assertTrue(await self.repo.exists({"name": {"$ieq": "500 ITEMS"}}))
        self.assertFalse(await self.repo.exists({"name": {"$ieq": "500"}}))

    async def test_comparison_and_membership_operators(self):
        first = await self._option("A", 1000000001, use_count=1)
        await self._option("B", 1000000002, use_count=5)
        await self._option("C", 1000000003, use_count=9)

        self.assertEqual(await self.repo.count({"use_count": {"$gte": 5}}), 2)
        self.assertEqual(await self.repo.count({"use_count": {"$lt": 5}}), 1)
        self.assertEqual(await self.repo.count({"id": {"$ne": first.id}}), 2)
        self.assertEqual(
            await self.repo.count({"unique_code": {"$in": [1000000001, 1000000003]}}),
            2,
        )

    async def test_unknown_field_or_operator_is_rejected(self):
        with self.assertRaises(ValidationError):
            await self.repo.get_all({"colour": "red"})
        with self.assertRaises(ValidationError):
            await self.repo.get_all({"name": {"$regex": "x"}})
        with self.assertRaises(ValidationError):
            await self.repo.get_all(options=QueryOptions(populate=["owner"]))

    async def test_find_with_pagination(self):
        for index in range(5):
            await self._option(f"Option {index}", 1000000010 + index)

        page = await self.repo.find_with_pagination(
            {"dropdown_type": "category"},
            PaginationOptions(page=2, limit=2, sort={"unique_code": 1}),
        )
        self.assertEqual([r.name for r in page.items], ["Option 2", "Option 3"])
        self.assertEqual(page.pagination.total_count, 5)
        self.assertEqual(page.pagination.total_pages, 3)
        self.assertTrue(page.pagination.has_next)
        self.assertTrue(page.pagination.has_prev)

        with self.assertRaises(ValidationError):
            await self.repo.find_with_pagination(None, PaginationOptions(page=0))
        with self.assertRaises(ValidationError):
            await self.repo.find_with_pagination(None, PaginationOptions(limit=0))

    async def test_update_by_id(self):
        option = await self._option("Technology", 1000000001)
        updated = await self.repo.update_by_id(option.id, {"name": "Tech", "status": False})
        self.assertEqual(updated.name, "Tech")
        self.assertFalse(updated.status)
        self.assertEqual(updated.public_id, option.public_id)
        self.assertGreaterEqual(updated.updated_at, option.updated_at)

        with self.assertRaises(ValidationError):
            await self.repo.update_by_id(option.id, {"public_id": "other"})
        with self.assertRaises(NotFoundError):
            await self.repo.update_by_id("missing", {"name": "x"})

    async def test_duplicate_code_in_same_language_conflicts(self):
        await self._option("Technology", 1000000001)
        with self.assertRaises(ConflictError):
            await self._option("Games", 1000000001)
        self.assertEqual(await self.repo.count(), 1)

    async def test_update_many_and_delete_many(self):
        await self._option("A", 1000000001)
        await self._option("B", 1000000002)
        await self._option("C", 1000000003, language=self.es)

        result = await self.repo.update_many({"language_id": self.en.id}, {"status": False})
        self.assertEqual(result.count, 2)
        self.assertTrue(all(not r.status for r in result.updated))

        deleted = await self.repo.delete_many({"status": False})
        self.assertEqual(deleted.count, 2)
        self.assertEqual(sorted(r.name for r in deleted.deleted), ["A", "B"])
        self.assertEqual(await self.repo.count(), 1)

        empty = await self.repo.delete_many({"name": "nothing"})
        self.assertEqual(empty.count, 0)

    async def test_delete_by_id(self):
        option = await self._option("A", 1000000001)
        self.assertTrue(await self.repo.delete_by_id(option.id))
        self.assertFalse(await self.repo.delete_by_id(option.id))

    async def test_increment(self):
        option = await self._option("A", 1000000001)
        updated = await self.repo.increment(option.id, "use_count", 3)
        self.assertEqual(updated.use_count, 3)
        self.assertIsNone(await self.repo.increment("missing", "use_count"))

    async def test_upsert_inserts_then_updates(self):
        settings = self.backend.settings
        first = await settings.upsert(
            {"group_type": "general", "key": "site_name"},
            {"value": "Acme", "record_type": "STRING"},
        )
        second = await settings.upsert(
            {"group_type": "general", "key": "site_name"},
            {"value": "Acme Inc", "record_type": "STRING"},
        )
        self.assertEqual(first.id, second.id)
        self.assertEqual(second.value, "Acme Inc")
        self.assertEqual(await settings.count({"group_type": "general"}), 1)


if __name__ == "__main__":
    unittest.main()
