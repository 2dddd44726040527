#!/usr/bin/env python3
from stacks.grants_demo_stack import build_app

app = build_app()

app.synth()
