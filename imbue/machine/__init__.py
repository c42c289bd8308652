import pluggy

hookimpl = pluggy.HookimplMarker("machine")
