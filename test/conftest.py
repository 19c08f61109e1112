"""Pytest configuration and fixtures for RepTracker tests."""

import json

import pytest


@pytest.fixture
def temp_config_dir(tmp_path):
    """Create a temporary config directory for testing."""
    config_dir = tmp_path / ".config" / "reptracker"
    config_dir.mkdir(parents=True)
    return config_dir


@pytest.fixture
def sample_config():
    """Sample configuration data for testing."""
    return {
        "window": {"width": 900, "height": 650},
        "theme": "auto",
        "view_mode": "filtered",
        "reputation_expanded": {"rep:filtered:section:Account-Wide": True},
        "nesting_exceptions": ["Winterpelt Furbolg"],
    }


@pytest.fixture
def sample_config_file(temp_config_dir, sample_config):
    """Create a sample config file."""
    config_file = temp_config_dir / "reptracker_config.json"
    with open(config_file, "w") as f:
        json.dump(sample_config, f)
    return config_file


@pytest.fixture
def sample_lua_content():
    """Sample Warband Nexus SavedVariables with global reputation records."""
    return """
WarbandNexusDB = {
	["profileKeys"] = {
		["Alice - Silvermoon"] = "Default",
	},
	["global"] = {
		["characters"] = {
			["Bob-Silvermoon"] = {
				["name"] = "Bob",
				["realm"] = "Silvermoon",
				["classFile"] = "WARRIOR",
				["level"] = 80,
				["lastSeen"] = 1700000100,
			},
			["Alice-Silvermoon"] = {
				["name"] = "Alice",
				["realm"] = "Silvermoon",
				["classFile"] = "MAGE",
				["level"] = 80,
				["lastSeen"] = 1700000200,
			},
		},
		["factionMetadata"] = {
			[2590] = {
				["name"] = "Council of Dornogal",
				["iconTexture"] = 5891368,
				["isRenown"] = true,
				["isHeaderWithRep"] = false,
				["parentHeaders"] = {
					"The War Within", -- [1]
				},
			},
			[2600] = {
				["name"] = "The Severed Threads",
				["isHeaderWithRep"] = true,
				["parentHeaders"] = {
					"The War Within", -- [1]
				},
			},
			[2601] = {
				["name"] = "The Weaver",
				["isHeaderWithRep"] = false,
				["parentHeaders"] = {
					"The War Within", -- [1]
					"The Severed Threads", -- [2]
				},
			},
		},
		["reputations"] = {
			[2590] = {
				["isAccountWide"] = true,
				["isMajorFaction"] = true,
				["isRenown"] = true,
				["value"] = {
					["renownLevel"] = 25,
					["renownMaxLevel"] = 25,
					["currentValue"] = 0,
					["maxValue"] = 1,
					["lastUpdated"] = 1700000000,
				},
			},
			[2600] = {
				["isAccountWide"] = false,
				["chars"] = {
					["Alice-Silvermoon"] = {
						["standingID"] = 6,
						["currentValue"] = 3000,
						["maxValue"] = 12000,
					},
					["Bob-Silvermoon"] = {
						["standingID"] = 7,
						["currentValue"] = 100,
						["maxValue"] = 21000,
						["paragonValue"] = 500,
						["paragonThreshold"] = 10000,
						["paragonRewardPending"] = true,
					},
					["Ghost-Silvermoon"] = {
						["standingID"] = 8,
						["currentValue"] = 999,
						["maxValue"] = 999,
					},
				},
			},
			[2601] = {
				["isAccountWide"] = false,
				["chars"] = {
					["Alice-Silvermoon"] = {
						["standingID"] = 5,
						["currentValue"] = 10,
						["maxValue"] = 6000,
						["rankName"] = "Mastermind",
					},
				},
			},
		},
		["reputationHeaders"] = {
			{
				["name"] = "The War Within",
				["factions"] = {
					2590, -- [1]
					2600, -- [2]
					2601, -- [3]
				},
			}, -- [1]
		},
	},
}
"""


@pytest.fixture
def sample_lua_file(tmp_path, sample_lua_content):
    """Create a sample SavedVariables file."""
    lua_file = tmp_path / "WarbandNexus.lua"
    with open(lua_file, "w") as f:
        f.write(sample_lua_content)
    return lua_file


@pytest.fixture
def legacy_lua_content():
    """Older SavedVariables layout: progress stored under each character."""
    return """
WarbandNexusDB = {
	["global"] = {
		["characters"] = {
			["Alice-Silvermoon"] = {
				["name"] = "Alice",
				["classFile"] = "MAGE",
				["level"] = 80,
				["reputations"] = {
					[2045] = {
						["renownLevel"] = 8,
						["currentValue"] = 200,
						["maxValue"] = 2500,
						["isMajorFaction"] = true,
					},
					[72] = {
						["standingID"] = 8,
						["currentValue"] = 999,
						["maxValue"] = 999,
					},
				},
				["reputationHeaders"] = {
					{
						["name"] = "Dragonflight",
						["factions"] = {
							2045, -- [1]
						},
					}, -- [1]
					{
						["name"] = "Classic",
						["factions"] = {
							72, -- [1]
						},
					}, -- [2]
				},
			},
			["Bob-Silvermoon"] = {
				["name"] = "Bob",
				["classFile"] = "PRIEST",
				["level"] = 70,
				["reputations"] = {
					[72] = {
						["standingID"] = 8,
						["currentValue"] = 999,
						["maxValue"] = 999,
					},
				},
			},
		},
	},
}
"""
