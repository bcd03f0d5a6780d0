"""
entityjson Quickstart Example

This example walks through the mapper end to end:

1. Describe entity types in a schema registry
2. Import a JSON document with nested records and references
3. Re-import to update entities in place
4. Export the object graph back to JSON
"""

import json

from entityjson import ObjectContext, SchemaRegistry


MODEL = {
    "entities": [
        {
            "name": "Company",
            "attributes": [{"name": "title", "kind": "string"}],
            "relationships": [
                {"name": "departments", "target": "Department", "to_many": True, "inverse": "company"},
            ],
        },
        {
            "name": "Department",
            "attributes": [{"name": "label", "kind": "string"}],
            "relationships": [
                {"name": "company", "target": "Company", "inverse": "departments"},
                {"name": "employees", "target": "Employee", "to_many": True, "inverse": "department"},
            ],
        },
        {
            "name": "Employee",
            "attributes": [
                {"name": "name", "kind": "string"},
                {"name": "since", "kind": "date"},
            ],
            "relationships": [
                {"name": "department", "target": "Department", "inverse": "employees"},
                {"name": "mentor", "target": "Employee"},
            ],
        },
    ]
}

DOCUMENT = [
    {
        "entity": "Company",
        "id": "acme",
        "attributes": {"title": "ACME"},
        "relationships": {
            "departments": [
                {
                    "entity": "Department",
                    "id": "eng",
                    "attributes": {"label": "Engineering"},
                    "relationships": {
                        "employees": [
                            {"entity": "Employee", "id": "bob", "attributes": {"name": "Bob", "since": "2017-06-12T09:00:00Z"},
                             "relationships": {"mentor": "alice"}},
                            {"entity": "Employee", "id": "alice", "attributes": {"name": "Alice", "since": "2015-03-02T09:00:00Z"}},
                        ]
                    },
                }
            ]
        },
    }
]


def main():
    # ==========================================================================
    # Describe the model
    # ==========================================================================
    print("=" * 60)
    print("entityjson Quickstart")
    print("=" * 60)

    registry = SchemaRegistry.from_dict(MODEL)
    context = ObjectContext(registry)
    print(f"\nEntity types: {', '.join(registry.list_types())}")

    # ==========================================================================
    # Import
    # ==========================================================================
    print("\n" + "-" * 40)
    print("Step 1: Importing")
    print("-" * 40)

    result = context.import_json(json.dumps(DOCUMENT))
    print(f"Inserted {result.inserted} entities, updated {result.updated}")

    bob = context.lookup("Employee", "bob")
    # "alice" is referenced before her record appears
    print(f"Bob's mentor: {context.get(context.get(bob, 'mentor'), 'name')}")
    print(f"Bob's department: {context.get(context.get(bob, 'department'), 'label')}")

    # ==========================================================================
    # Update in place
    # ==========================================================================
    print("\n" + "-" * 40)
    print("Step 2: Re-importing")
    print("-" * 40)

    result = context.import_json(json.dumps([
        {"entity": "Company", "id": "acme", "attributes": {"title": "ACME Corp"}},
    ]))
    company = context.lookup("Company", "acme")
    print(f"Updated {result.updated} entity: title is now {context.get(company, 'title')!r}")
    print(f"Companies in store: {context.count('Company')}")

    # ==========================================================================
    # Export
    # ==========================================================================
    print("\n" + "-" * 40)
    print("Step 3: Exporting")
    print("-" * 40)

    print(json.dumps(context.json_objects(), indent=2))


if __name__ == "__main__":
    main()
