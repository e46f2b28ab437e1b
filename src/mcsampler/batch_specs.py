"""
Block Specification System

This module defines how a parameter vector is split into blocks for Gibbs
sampling. Blocks are updated in list order (systematic scan); each block
either draws directly from its exact full conditional, or takes a
Metropolis-Hastings step restricted to the block against the joint target.

Block offsets are implied by order: the first block covers parameters
[0, size_0), the next [size_0, size_0 + size_1), and so on.
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Callable, Dict, List, Optional

from .error_handling import InvalidConfiguration
from .proposals import Proposal, make_proposal


# ============================================================================
# SAMPLER TYPE ENUMERATION
# ============================================================================

class SamplerType(IntEnum):
    """
    Enumeration of block sampler types.
    """
    METROPOLIS_HASTINGS = 0  # MH step with a proposal, accept/reject on the joint density
    DIRECT_CONJUGATE = 1     # Exact draw from the full conditional (always accepted)

    def __str__(self):
        return self.name.replace('_', ' ').title()


# ============================================================================
# BLOCK SPECIFICATION
# ============================================================================

@dataclass
class BlockSpec:
    """
    Specification for a single parameter block.

    A "block" is a group of parameters that are updated together in one step.

    Required fields:
        size: Number of parameters in this block
        sampler_type: How to sample this block

    Optional fields:
        conditional: For DIRECT_CONJUGATE blocks, fn(key, state, indices) -> values.
                     ``state`` holds the current values of every parameter
                     (already updated for earlier blocks in this sweep);
                     ``indices`` are this block's positions in the state.
                     Must return ``size`` values drawn from the exact full
                     conditional; the block's own current entries must be ignored.
        proposal: For METROPOLIS_HASTINGS blocks, a Proposal or proposal spec dict
        label: Human-readable name for debugging/logging
        metadata: Additional info (not used by sampler, for user reference)

    Examples:
        # Exact conditional draw for a precision parameter
        BlockSpec(size=1, sampler_type=SamplerType.DIRECT_CONJUGATE,
                  conditional=draw_precision, label="tau")

        # Metropolis-within-Gibbs block
        BlockSpec(size=2, sampler_type=SamplerType.METROPOLIS_HASTINGS,
                  proposal={'type': 'gaussian', 'scale': 0.3}, label="slopes")
    """
    # Required
    size: int
    sampler_type: SamplerType = SamplerType.DIRECT_CONJUGATE

    # Optional - for direct samplers
    conditional: Optional[Callable] = None

    # Optional - for MH samplers
    proposal: Optional[Any] = None

    # Optional - metadata
    label: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        """Validate the specification after initialization."""
        if isinstance(self.size, bool) or not isinstance(self.size, int) or self.size < 1:
            raise InvalidConfiguration(f"Block size must be a positive integer, got {self.size!r}")

        if not isinstance(self.sampler_type, (SamplerType, int)):
            raise InvalidConfiguration(
                f"sampler_type must be SamplerType or int, got {type(self.sampler_type)}"
            )
        if not isinstance(self.sampler_type, SamplerType):
            self.sampler_type = SamplerType(self.sampler_type)

        if self.sampler_type == SamplerType.DIRECT_CONJUGATE:
            if not callable(self.conditional):
                raise InvalidConfiguration(
                    "DIRECT_CONJUGATE sampler requires a callable 'conditional'"
                )
        elif self.sampler_type == SamplerType.METROPOLIS_HASTINGS:
            if self.proposal is None:
                raise InvalidConfiguration(
                    "METROPOLIS_HASTINGS block requires a 'proposal'"
                )
            self.proposal = make_proposal(self.proposal)

    def is_mh_sampler(self):
        """Check if this block uses a Metropolis-Hastings step."""
        return self.sampler_type == SamplerType.METROPOLIS_HASTINGS

    def is_direct_sampler(self):
        """Check if this block uses direct sampling."""
        return self.sampler_type == SamplerType.DIRECT_CONJUGATE

    def __repr__(self):
        """Pretty string representation for debugging."""
        parts = [f"BlockSpec(size={self.size}, sampler={self.sampler_type}"]
        if self.is_mh_sampler():
            parts.append(f"proposal={self.proposal!r}")
        if self.label:
            parts.append(f'label="{self.label}"')
        return ", ".join(parts) + ")"


# ============================================================================
# VALIDATION
# ============================================================================

def validate_block_specs(specs: List[BlockSpec], model_name: str = "") -> None:
    """
    Validate a list of block specifications.

    Args:
        specs: List of BlockSpec objects
        model_name: Name of model (for error messages)

    Raises:
        InvalidConfiguration: If specs are invalid
    """
    if not isinstance(specs, (list, tuple)):
        raise InvalidConfiguration(f"Block specs must be a list, got {type(specs)}")

    if len(specs) == 0:
        raise InvalidConfiguration("Block specs list cannot be empty")

    errors = []
    for i, spec in enumerate(specs):
        if not isinstance(spec, BlockSpec):
            errors.append(f"Block {i}: Expected BlockSpec object, got {type(spec)}")

    if errors:
        prefix = f"Invalid block specs for '{model_name}'" if model_name else "Invalid block specs"
        raise InvalidConfiguration(f"{prefix}:\n  " + "\n  ".join(errors))


def block_offsets(specs: List[BlockSpec]) -> List[tuple]:
    """
    Compute (start, end) parameter positions for each block, in scan order.
    """
    offsets = []
    start = 0
    for spec in specs:
        offsets.append((start, start + spec.size))
        start += spec.size
    return offsets


def total_block_params(specs: List[BlockSpec]) -> int:
    return sum(spec.size for spec in specs)


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def create_component_blocks(conditionals: List[Callable],
                            label_prefix: str = "theta") -> List[BlockSpec]:
    """
    Convenience function to create one single-parameter direct block per conditional.

    Args:
        conditionals: One full-conditional sampler per parameter, in scan order
        label_prefix: Prefix for block labels

    Returns:
        List of BlockSpec objects, one per component

    Example:
        >>> specs = create_component_blocks([draw_x, draw_theta])
        >>> # Creates 2 blocks of size 1 labelled "theta_0", "theta_1"
    """
    return [
        BlockSpec(
            size=1,
            sampler_type=SamplerType.DIRECT_CONJUGATE,
            conditional=fn,
            label=f"{label_prefix}_{i}"
        )
        for i, fn in enumerate(conditionals)
    ]


# ============================================================================
# SUMMARY UTILITIES
# ============================================================================

def summarize_blocks(specs: List[BlockSpec]) -> str:
    """
    Create a human-readable summary of block specifications.

    Args:
        specs: List of BlockSpec objects

    Returns:
        Formatted string summary
    """
    total_params = total_block_params(specs)
    sampler_counts = {}

    for spec in specs:
        stype = str(spec.sampler_type)
        sampler_counts[stype] = sampler_counts.get(stype, 0) + 1

    lines = [
        "Block Specification Summary:",
        f"  Total blocks: {len(specs)}",
        f"  Total parameters: {total_params}",
        "",
        "Sampler breakdown:"
    ]

    for stype, count in sorted(sampler_counts.items()):
        lines.append(f"  {stype}: {count} block(s)")

    if any(spec.label for spec in specs):
        lines.append("\nLabeled blocks:")
        for i, spec in enumerate(specs):
            if spec.label:
                lines.append(f"  Block {i}: {spec.label} (size={spec.size})")

    return "\n".join(lines)
