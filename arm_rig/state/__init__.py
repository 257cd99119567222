"""
Authoritative per-joint state for the arm rig.

Provides the joint state and command models, the per-(joint, field) edit
ownership states, the throttled snapshot sampler used during drags, and
the reconciliation engine merging telemetry, local edits and IK output.
"""
