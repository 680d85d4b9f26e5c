# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Tests for RelationshipResolver edge families."""

from pathlib import Path
from typing import Dict

from project_context.models import DependencyRelationship, ProjectStructure, RelationshipType
from project_context.relationship_resolver import (
    ImportExtractor,
    RelationshipResolver,
    contract_name,
    normalize_test_name,
    resolve_specifier,
)


def _write(root: Path, files: Dict[str, str]) -> None:
    for rel, content in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)


def _edges(relationships, relationship_type=None):
    return {
        (r.from_file, r.to_file)
        for r in relationships
        if relationship_type is None or r.relationship_type == relationship_type
    }


class TestImportExtractor:
    """Tests for pattern-based specifier extraction."""

    def test_import_forms(self):
        content = "\n".join(
            [
                "import React from 'react';",
                'import { a, b } from "./utils";',
                "import './styles';",
                "const fs = require('fs');",
                "const x = require ( \"../x\" );",
                "export { y } from './y';",
                "export * from \"./z\";",
            ]
        )

        assert ImportExtractor().extract(content) == [
            "react",
            "./utils",
            "./styles",
            "fs",
            "../x",
            "./y",
            "./z",
        ]

    def test_no_imports(self):
        assert ImportExtractor().extract("const a = 1;\n") == []


class TestNameNormalization:
    """Tests for contract and test name normalization."""

    def test_contract_name(self):
        assert contract_name("contracts/My-Token.sol") == "MyToken"
        assert contract_name("programs/escrow/src/lib.rs") == "lib"

    def test_normalize_test_name(self):
        assert normalize_test_name("test/my_token.test.ts") == "mytoken"
        assert normalize_test_name("test/Vault.spec.js") == "Vault"
        assert normalize_test_name("test/helpers.ts") == "helpersts"


class TestResolveSpecifier:
    """Tests for specifier resolution against the known-file universe."""

    KNOWN = {"src/b.ts", "src/lib/index.tsx", "src/data.json", "shared/c.js"}

    def test_extension_added(self):
        assert resolve_specifier("src/a.ts", "./b", self.KNOWN) == "src/b.ts"

    def test_exact_path(self):
        assert resolve_specifier("src/a.ts", "./data.json", self.KNOWN) == "src/data.json"

    def test_index_file(self):
        assert resolve_specifier("src/a.ts", "./lib", self.KNOWN) == "src/lib/index.tsx"

    def test_parent_directory(self):
        assert resolve_specifier("src/a.ts", "../shared/c", self.KNOWN) == "shared/c.js"

    def test_root_absolute(self):
        assert resolve_specifier("deep/nested/a.ts", "/shared/c", self.KNOWN) == "shared/c.js"

    def test_unresolved(self):
        assert resolve_specifier("src/a.ts", "./missing", self.KNOWN) is None

    def test_escaping_root(self):
        assert resolve_specifier("a.ts", "../../outside", self.KNOWN) is None


class TestImportEdges:
    """Tests for import edges produced by resolve_all."""

    def test_relative_import_yields_one_edge(self, tmp_path):
        _write(tmp_path, {"lib/a.ts": "import { b } from './b';\n", "lib/b.ts": ""})
        structure = ProjectStructure(other=["lib/a.ts", "lib/b.ts"])

        relationships = RelationshipResolver(tmp_path).resolve_all(structure)

        assert relationships == [
            DependencyRelationship("lib/a.ts", "lib/b.ts", RelationshipType.IMPORT)
        ]

    def test_bare_package_edge(self, tmp_path):
        """Test that bare package names become edges, scoped and dotted names do not."""
        _write(
            tmp_path,
            {
                "lib/a.ts": (
                    "import React from 'react';\n"
                    "import { x } from '@scope/pkg';\n"
                    "import y from 'lodash.get';\n"
                )
            },
        )
        structure = ProjectStructure(other=["lib/a.ts"])

        relationships = RelationshipResolver(tmp_path).resolve_all(structure)

        assert _edges(relationships) == {("lib/a.ts", "react")}

    def test_node_modules_and_types_skipped(self, tmp_path):
        _write(
            tmp_path,
            {
                "lib/a.ts": (
                    "import x from '../node_modules/x/index';\n"
                    "import type { T } from '@types/node';\n"
                )
            },
        )
        structure = ProjectStructure(other=["lib/a.ts"])

        assert RelationshipResolver(tmp_path).resolve_all(structure) == []

    def test_unresolved_relative_import_dropped(self, tmp_path):
        _write(tmp_path, {"lib/a.ts": "import { m } from './missing';\n"})
        structure = ProjectStructure(other=["lib/a.ts"])

        assert RelationshipResolver(tmp_path).resolve_all(structure) == []

    def test_config_files_are_not_import_targets(self, tmp_path):
        """Test that config files are not import targets."""
        _write(tmp_path, {"src/api/a.ts": "import c from '../../hardhat.config';\n"})
        structure = ProjectStructure(backend=["src/api/a.ts"], config=["hardhat.config.ts"])

        relationships = RelationshipResolver(tmp_path).resolve_all(structure)

        assert _edges(relationships, RelationshipType.IMPORT) == set()

    def test_only_script_like_files_scanned(self, tmp_path):
        """Test that non-JS/TS files are not scanned for imports."""
        _write(tmp_path, {"lib/a.py": "from './b' import x\n", "lib/b.ts": ""})
        structure = ProjectStructure(other=["lib/a.py", "lib/b.ts"])

        assert RelationshipResolver(tmp_path).resolve_all(structure) == []

    def test_unreadable_file_contributes_nothing(self, tmp_path):
        _write(tmp_path, {"lib/b.ts": ""})
        (tmp_path / "lib" / "a.ts").write_bytes(b"\xff\xfe import './b'")
        structure = ProjectStructure(other=["lib/a.ts", "lib/b.ts"])

        assert RelationshipResolver(tmp_path).resolve_all(structure) == []


class TestScanLimit:
    """Tests for the import scan budget."""

    def _project(self, root: Path, count: int) -> ProjectStructure:
        files = {f"lib/f{i:02d}.ts": "import x from 'react';\n" for i in range(count)}
        _write(root, files)
        return ProjectStructure(other=sorted(files))

    def test_limit_applied_and_counted(self, tmp_path):
        structure = self._project(tmp_path, 5)
        resolver = RelationshipResolver(tmp_path, import_scan_limit=3)

        relationships = resolver.resolve_all(structure)

        assert len(relationships) == 3
        assert resolver.last_unscanned_count == 2

    def test_zero_means_unlimited(self, tmp_path):
        structure = self._project(tmp_path, 5)
        resolver = RelationshipResolver(tmp_path, import_scan_limit=0)

        assert len(resolver.resolve_all(structure)) == 5
        assert resolver.last_unscanned_count == 0

    def test_count_reset_on_next_run(self, tmp_path):
        structure = self._project(tmp_path, 5)
        resolver = RelationshipResolver(tmp_path, import_scan_limit=3)
        resolver.resolve_all(structure)

        resolver.import_scan_limit = 10
        resolver.resolve_all(structure)

        assert resolver.last_unscanned_count == 0


class TestContractEdges:
    """Tests for test -> contract and script -> contract edges."""

    def test_test_edges_by_name(self, tmp_path):
        structure = ProjectStructure(
            contracts=["contracts/Token.sol", "contracts/Vault.sol"],
            tests=["test/Token.test.ts", "test/token-sale.spec.ts", "test/Other.test.ts"],
        )

        relationships = RelationshipResolver(tmp_path).resolve_all(structure)

        assert _edges(relationships, RelationshipType.TEST) == {
            ("test/Token.test.ts", "contracts/Token.sol"),
            ("test/token-sale.spec.ts", "contracts/Token.sol"),
        }

    def test_script_edges_by_mention(self, tmp_path):
        _write(
            tmp_path,
            {
                "scripts/deploy.ts": "const f = await ethers.getContractFactory('Token');\n",
                "scripts/seed.ts": "console.log('seeding');\n",
            },
        )
        structure = ProjectStructure(
            contracts=["contracts/Token.sol"],
            scripts=["scripts/deploy.ts", "scripts/seed.ts"],
        )

        relationships = RelationshipResolver(tmp_path).resolve_all(structure)

        assert _edges(relationships, RelationshipType.CONFIG) == {
            ("scripts/deploy.ts", "contracts/Token.sol")
        }


class TestTsconfigEdges:
    """Tests for file -> tsconfig.json edges."""

    def test_root_tsconfig_governs_nested_files(self, tmp_path):
        structure = ProjectStructure(
            backend=["src/api/users.ts", "backend/db.js"],
            frontend=["app/page.tsx"],
            config=["tsconfig.json"],
        )

        relationships = RelationshipResolver(tmp_path).resolve_all(structure)

        assert _edges(relationships, RelationshipType.CONFIG) == {
            ("src/api/users.ts", "tsconfig.json"),
            ("app/page.tsx", "tsconfig.json"),
        }

    def test_nested_tsconfig_scoped_to_its_directory(self, tmp_path):
        structure = ProjectStructure(
            frontend=["web/app/page.tsx", "app/page.tsx"],
            config=["web/tsconfig.json"],
        )

        relationships = RelationshipResolver(tmp_path).resolve_all(structure)

        assert _edges(relationships) == {("web/app/page.tsx", "web/tsconfig.json")}

    def test_edge_limit_per_tsconfig(self, tmp_path):
        structure = ProjectStructure(
            frontend=[f"app/p{i}.tsx" for i in range(5)],
            config=["tsconfig.json"],
        )

        relationships = RelationshipResolver(tmp_path, config_edge_limit=2).resolve_all(structure)

        assert len(relationships) == 2


class TestResolveFile:
    """Tests for single-file resolution used by incremental patching."""

    def test_outgoing_imports_only(self, tmp_path):
        structure = ProjectStructure(other=["lib/a.ts", "lib/b.ts", "lib/c.ts"])

        relationships = RelationshipResolver(tmp_path).resolve_file(
            "lib/a.ts", "import b from './b';\nimport c from './c';\n", structure
        )

        assert _edges(relationships) == {("lib/a.ts", "lib/b.ts"), ("lib/a.ts", "lib/c.ts")}

    def test_new_file_is_known_to_itself(self, tmp_path):
        """Test that a file not yet in the structure can still be resolved."""
        structure = ProjectStructure(other=["lib/b.ts"])

        relationships = RelationshipResolver(tmp_path).resolve_file(
            "lib/new.ts", "import b from './b';\n", structure
        )

        assert _edges(relationships) == {("lib/new.ts", "lib/b.ts")}

    def test_test_file(self, tmp_path):
        structure = ProjectStructure(contracts=["contracts/Token.sol"], tests=["test/Token.test.ts"])

        relationships = RelationshipResolver(tmp_path).resolve_file(
            "test/Token.test.ts", "describe('Token', () => {});\n", structure
        )

        assert _edges(relationships, RelationshipType.TEST) == {
            ("test/Token.test.ts", "contracts/Token.sol")
        }

    def test_script_file(self, tmp_path):
        structure = ProjectStructure(contracts=["contracts/Token.sol"], scripts=["scripts/d.ts"])

        relationships = RelationshipResolver(tmp_path).resolve_file(
            "scripts/d.ts", "deploy('Token')\n", structure
        )

        assert _edges(relationships, RelationshipType.CONFIG) == {
            ("scripts/d.ts", "contracts/Token.sol")
        }

    def test_tsconfig_edge_for_frontend_file(self, tmp_path):
        structure = ProjectStructure(frontend=["app/page.tsx"], config=["tsconfig.json"])

        relationships = RelationshipResolver(tmp_path).resolve_file("app/page.tsx", "", structure)

        assert _edges(relationships) == {("app/page.tsx", "tsconfig.json")}
