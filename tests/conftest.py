"""Pytest configuration and fixtures."""

import json

import pytest

from audit_engine.config import Settings

# Well-formed analysis response
RESPONSE_VALID = (
    '{"is_vulnerable":true,"contains_malicious_code":false,"overall_risk_level":"High",'
    '"vulnerabilities":[{"name":"Reentrancy","description":"d","risk_level":"High",'
    '"location":"withdraw","suggested_fix":"f"}],"malicious_patterns":[],"recommendation":"r"}'
)

# Same object with the description's closing quote lost and the text cut off
RESPONSE_TRUNCATED = (
    '{"is_vulnerable":true,"contains_malicious_code":false,"overall_risk_level":"High",'
    '"vulnerabilities":[{"name":"Reentrancy","description":"d,"risk_level":"High",'
    '"location":"withdraw'
)

RESPONSE_PROSE = "I was unable to analyze this contract because the input looked incomplete."

RESPONSE_FENCED = "Here is my analysis:\n\n```json\n" + RESPONSE_VALID + "\n```\n\nLet me know if you need more."

SAMPLE_SANDWICH_HOOK = '''
pragma solidity ^0.8.24;

contract SandwichHook is BaseHook {
    address public owner;
    bool private pendingBackrun;

    function beforeSwap(address, PoolKey calldata key, IPoolManager.SwapParams calldata params, bytes calldata)
        external
        override
        returns (bytes4, BeforeSwapDelta, uint24)
    {
        poolManager.swap(key, frontRunParams(params), "");
        pendingBackrun = true;
        return (this.beforeSwap.selector, BeforeSwapDeltaLibrary.ZERO_DELTA, 0);
    }

    function afterSwap(address, PoolKey calldata key, IPoolManager.SwapParams calldata params, BalanceDelta, bytes calldata)
        external
        override
        returns (bytes4, int128)
    {
        poolManager.swap(key, backRunParams(params), "");
        pendingBackrun = false;
        currency.transfer(owner, profit);
        return (this.afterSwap.selector, 0);
    }
}
'''

SAMPLE_LIQUIDITY_LOCK = '''
pragma solidity ^0.8.24;

contract LockHook is BaseHook {
    function beforeRemoveLiquidity(
        address sender,
        PoolKey calldata,
        IPoolManager.ModifyLiquidityParams calldata,
        bytes calldata
    ) external view override returns (bytes4) {
        if (sender != owner) {
            revert("Liquidity locked");
        }
        return this.beforeRemoveLiquidity.selector;
    }
}
'''

SAMPLE_BENIGN_HOOK = '''
pragma solidity ^0.8.24;

contract CounterHook is BaseHook {
    mapping(PoolId => uint256) public beforeSwapCount;

    function beforeSwap(address, PoolKey calldata key, IPoolManager.SwapParams calldata, bytes calldata)
        external
        override
        returns (bytes4, BeforeSwapDelta, uint24)
    {
        beforeSwapCount[key.toId()]++;
        return (this.beforeSwap.selector, BeforeSwapDeltaLibrary.ZERO_DELTA, 0);
    }
}
'''


def make_report_data(**overrides):
    """Persisted report mapping that passes validation unless overridden."""
    data = {
        "is_vulnerable": True,
        "contains_malicious_code": False,
        "overall_risk_level": "High",
        "vulnerabilities": [
            {
                "name": "Reentrancy",
                "description": "External call before state update",
                "risk_level": "High",
                "location": "withdraw",
                "suggested_fix": "Apply checks-effects-interactions",
            }
        ],
        "malicious_patterns": [],
        "recommendation": "Fix the reentrancy issue before deployment.",
        "analysis_timestamp": 1700000000000,
        "code_fingerprint": "5e918d2",
    }
    data.update(overrides)
    return data


def make_response(**overrides) -> str:
    """Generated response text for a report, as the model would return it."""
    data = make_report_data(**overrides)
    data.pop("analysis_timestamp")
    data.pop("code_fingerprint")
    return json.dumps(data)


@pytest.fixture
def settings():
    """Settings isolated from any local .env file."""
    return Settings(_env_file=None, gemini_api_key="test-api-key")


@pytest.fixture
def flag_settings():
    """Settings that leave overall risk untouched on merge."""
    return Settings(_env_file=None, gemini_api_key="test-api-key", risk_escalation_policy="flag")


@pytest.fixture
def response_valid():
    return RESPONSE_VALID


@pytest.fixture
def response_truncated():
    return RESPONSE_TRUNCATED


@pytest.fixture
def response_prose():
    return RESPONSE_PROSE


@pytest.fixture
def response_fenced():
    return RESPONSE_FENCED


@pytest.fixture
def sandwich_hook():
    """Hook that trades around user swaps."""
    return SAMPLE_SANDWICH_HOOK


@pytest.fixture
def liquidity_lock():
    """Hook that blocks liquidity removal."""
    return SAMPLE_LIQUIDITY_LOCK


@pytest.fixture
def benign_hook():
    return SAMPLE_BENIGN_HOOK


@pytest.fixture
def report_data():
    """Factory for persisted report mappings."""
    return make_report_data


@pytest.fixture
def response_for():
    """Factory for generated response text."""
    return make_response
