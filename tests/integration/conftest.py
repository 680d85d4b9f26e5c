# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Shared fixtures for integration tests.

Provides a representative full-stack dapp project for integration testing.
"""

import json
from pathlib import Path

import pytest

SAMPLE_FILES = {
    "package.json": json.dumps(
        {
            "name": "sample-dapp",
            "dependencies": {"next": "^14.0.0", "react": "^18.2.0"},
            "devDependencies": {"hardhat": "^2.19.0"},
        }
    ),
    "pnpm-lock.yaml": "lockfileVersion: '6.0'\n",
    "tsconfig.json": '{"compilerOptions": {"strict": true}}\n',
    "hardhat.config.ts": "import '@nomicfoundation/hardhat-toolbox';\nexport default {};\n",
    ".gitignore": "coverage/\n",
    "contracts/Token.sol": "pragma solidity ^0.8.20;\ncontract Token {}\n",
    "contracts/Vault.sol": "pragma solidity ^0.8.20;\ncontract Vault {}\n",
    "app/layout.tsx": "export default function RootLayout() { return null; }\n",
    "app/page.tsx": (
        "import React from 'react';\n"
        "import { Button } from '../components/Button';\n"
        "import { cn } from '@/lib/utils';\n"
        "export default function Page() { return null; }\n"
    ),
    "components/Button.tsx": "import { Icon } from './Icon';\nexport const Button = () => null;\n",
    "components/Icon.tsx": "export const Icon = () => null;\n",
    "src/api/tokens.ts": "import { format } from '../../lib/format';\nexport const list = [];\n",
    "lib/format.ts": "export const format = (n: number) => n.toFixed(2);\n",
    "test/Token.test.ts": "import { expect } from 'chai';\ndescribe('Token', () => {});\n",
    "test/Vault.spec.ts": "describe('Vault', () => {});\n",
    "scripts/deploy.ts": "const token = await ethers.deployContract('Token');\n",
    "node_modules/react/index.js": "module.exports = {};\n",
    "coverage/lcov.js": "export {};\n",
}


@pytest.fixture
def sample_dapp(tmp_path: Path) -> Path:
    """Create a representative hardhat + Next.js project for integration testing.

    Creates a project with:
    - Solidity contracts with matching tests and a deploy script
    - A Next.js frontend with cross-file component imports
    - A backend API route importing a shared helper
    - Root tsconfig, package.json and pnpm lockfile
    - Ignored directories (node_modules, a gitignored coverage dir)

    Returns:
        Path to the project root directory
    """
    project_root = tmp_path / "sample_dapp"
    for rel_path, content in SAMPLE_FILES.items():
        path = project_root / rel_path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
    return project_root


@pytest.fixture
def data_root(tmp_path: Path) -> Path:
    """Isolated data root for cache and log files."""
    return tmp_path / "data"
