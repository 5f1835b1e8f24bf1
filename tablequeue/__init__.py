"""TableQueue: restaurant ordering and queue management backend."""
