from glowstats.main import run

run()
