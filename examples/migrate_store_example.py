"""
Store Migration Example

This example builds a small organisation graph in a SQLite store, exports it,
and imports the export into a second store, showing how the relink importer
recreates relations that reference each other under new identifiers.
"""

import asyncio
import tempfile
from pathlib import Path

from graph_migrate.migration import GraphExporter, GraphImporter, snapshot
from graph_migrate.model.schema_types import Category, ValueKind
from graph_migrate.storage import create_store


async def build_source(store):
    """Define a schema and a few instances, including a self-referential relation."""
    await store.define_type("subordinate", Category.ROLE, "role")
    await store.define_type("supervisor", Category.ROLE, "role")
    await store.define_type("name", Category.ATTRIBUTE, "attribute", ValueKind.STRING)
    await store.define_type("Person", Category.ENTITY, "entity")
    await store.define_type("Reports_to", Category.RELATION, "relation")
    await store.define_relates("Reports_to", "subordinate")
    await store.define_relates("Reports_to", "supervisor")
    await store.define_plays("Person", "subordinate")
    await store.define_plays("Person", "supervisor")
    await store.define_has("Person", "name")

    people = []
    for person_name in ("Ada", "Grace", "Edsger, the boss"):
        person = await store.create_instance("Person")
        await store.attach_attribute(person, await store.create_attribute("name", person_name))
        people.append(person)

    for subordinate, supervisor in ((0, 1), (1, 2), (2, 2)):
        relation = await store.create_instance("Reports_to")
        await store.assign_role_player(relation, "subordinate", people[subordinate])
        await store.assign_role_player(relation, "supervisor", people[supervisor])


async def main():
    with tempfile.TemporaryDirectory() as workdir:
        address = str(Path(workdir) / "stores")
        export_dir = Path(workdir) / "export"

        print("🏗️  Building source store...")
        source = create_store("sqlite", address, "org")
        async with source:
            await build_source(source)
            counts = await snapshot(source)
            print(f"📊 Source: {counts.entity} entities, {counts.relation} relations, {counts.attribute} attributes")

            print("\n📤 Exporting...")
            export = await GraphExporter().run(source, export_dir)
        if not export.success:
            print(f"❌ Export failed: {export.errors}")
            return
        print(f"✅ Exported to {export.data_path} in {export.duration:.2f}s")

        schema_text = (Path(export.data_path) / "schema.gql").read_text()
        print(f"\n📝 Schema definition:\n{schema_text}")

        print("📥 Importing into a new store...")
        target = create_store("sqlite", address, "org_copy")
        async with target:
            result = await GraphImporter().run(target, export.data_path)
            if not result.success:
                print(f"❌ Import failed: {result.errors}")
                return

            for checksum in result.checksums:
                mark = "✅" if checksum.matched else "⚠️"
                print(f"{mark} {checksum.category}: expected {checksum.expected}, imported {checksum.imported}")

            print("\n🔗 Relations in the new store:")
            for relation in await target.get_instances("Reports_to"):
                players = await target.get_role_players(relation)
                print(f"   {relation[:8]}... {players}")


if __name__ == "__main__":
    asyncio.run(main())
