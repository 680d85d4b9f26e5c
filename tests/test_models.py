# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Tests for core data models."""

import json

from project_context.models import (
    STRUCTURE_CATEGORIES,
    BrokenReason,
    BrokenRelationship,
    ContextState,
    DependencyRelationship,
    Language,
    ProjectAnalysis,
    ProjectStack,
    ProjectStructure,
    RelationshipType,
)


def _sample_analysis() -> ProjectAnalysis:
    return ProjectAnalysis(
        stack=ProjectStack(
            contract_framework="hardhat",
            frontend_framework="nextjs",
            language="typescript",
            package_manager="pnpm",
            monorepo=True,
        ),
        structure=ProjectStructure(
            contracts=["contracts/Token.sol"],
            frontend=["app/page.tsx", "app/layout.tsx"],
            tests=["test/Token.test.ts"],
            config=["hardhat.config.ts"],
        ),
        relationships=[
            DependencyRelationship("app/page.tsx", "app/layout.tsx", RelationshipType.IMPORT),
            DependencyRelationship("test/Token.test.ts", "contracts/Token.sol", "test"),
        ],
        root_path="/work/dapp",
        analyzed_at=1700000000.5,
        unscanned_files=3,
    )


class TestProjectStack:
    """Tests for ProjectStack."""

    def test_defaults_are_unknown(self):
        """Test that an empty stack has no detected facts."""
        stack = ProjectStack()
        assert stack.contract_framework is None
        assert stack.language is None
        assert stack.monorepo is False

    def test_round_trip(self):
        """Test serialization round trip."""
        stack = ProjectStack(backend_framework="fastapi", language="python")
        assert ProjectStack.from_dict(stack.to_dict()) == stack

    def test_language_preference_order(self):
        """Test the documented tie-break order."""
        assert Language.PREFERENCE_ORDER == (
            "typescript",
            "javascript",
            "solidity",
            "rust",
            "python",
        )


class TestProjectStructure:
    """Tests for ProjectStructure helpers."""

    def test_categories_in_classification_order(self):
        """Test that categories() follows the fixed category order."""
        assert tuple(ProjectStructure().categories()) == STRUCTURE_CATEGORIES

    def test_all_files_excludes_config(self):
        """Test that the known-file universe excludes config files."""
        structure = ProjectStructure(
            contracts=["c.sol"],
            backend=["b.ts"],
            config=["tsconfig.json"],
            scripts=["scripts/deploy.ts"],
            other=["lib/x.ts"],
        )

        files = structure.all_files()

        assert "tsconfig.json" not in files
        assert set(files) == {"c.sol", "b.ts", "scripts/deploy.ts", "lib/x.ts"}

    def test_total_files(self):
        structure = ProjectStructure(backend=["a", "b"], other=["c"])
        assert structure.total_files() == 3


class TestDependencyRelationship:
    """Tests for DependencyRelationship."""

    def test_serialized_keys(self):
        """Test that edges serialize with from/to/type keys."""
        rel = DependencyRelationship("a.ts", "b.ts", RelationshipType.IMPORT)
        assert rel.to_dict() == {"from": "a.ts", "to": "b.ts", "type": "import"}

    def test_from_dict_defaults_unknown_type(self):
        rel = DependencyRelationship.from_dict({"from": "a", "to": "b"})
        assert rel.relationship_type == RelationshipType.UNKNOWN

    def test_touches_and_other_end(self):
        """Test endpoint helpers."""
        rel = DependencyRelationship("a.ts", "b.ts", RelationshipType.IMPORT)
        assert rel.touches("a.ts")
        assert rel.touches("b.ts")
        assert not rel.touches("c.ts")
        assert rel.other_end("a.ts") == "b.ts"
        assert rel.other_end("b.ts") == "a.ts"


class TestProjectAnalysis:
    """Tests for ProjectAnalysis."""

    def test_round_trip_preserves_everything(self):
        """Test that serialization preserves stack, structure, edges and timestamp."""
        analysis = _sample_analysis()

        restored = ProjectAnalysis.from_dict(json.loads(json.dumps(analysis.to_dict())))

        assert restored == analysis
        assert restored.analyzed_at == 1700000000.5
        assert restored.unscanned_files == 3

    def test_copy_is_independent(self):
        """Test that mutating a copy leaves the original untouched."""
        analysis = _sample_analysis()

        duplicate = analysis.copy()
        duplicate.relationships.clear()
        duplicate.structure.frontend.append("app/new.tsx")

        assert len(analysis.relationships) == 2
        assert "app/new.tsx" not in analysis.structure.frontend

    def test_from_dict_tolerates_missing_unscanned_files(self):
        data = _sample_analysis().to_dict()
        del data["unscanned_files"]
        assert ProjectAnalysis.from_dict(data).unscanned_files == 0


class TestContextState:
    """Tests for ContextState."""

    def test_defaults(self):
        state = ContextState()
        assert state.recent_files == []
        assert state.current_focus is None
        assert state.active_layer is None
        assert state.last_updated > 0

    def test_optional_fields_omitted_when_unset(self):
        """Test that unset focus and layer are not serialized."""
        data = ContextState(recent_files=["a.ts"], last_updated=1.0).to_dict()
        assert data == {"recent_files": ["a.ts"], "last_updated": 1.0}

    def test_round_trip(self):
        state = ContextState(
            recent_files=["a.ts", "b.ts"],
            current_focus=["a.ts"],
            active_layer="frontend",
            last_updated=5.0,
        )
        assert ContextState.from_dict(state.to_dict()) == state


def test_broken_relationship_to_dict():
    """Test BrokenRelationship serialization."""
    broken = BrokenRelationship("a.ts", "./x", "import", BrokenReason.IMPORT_NOT_FOUND)
    assert broken.to_dict() == {
        "from": "a.ts",
        "to": "./x",
        "type": "import",
        "reason": "import_not_found",
    }
