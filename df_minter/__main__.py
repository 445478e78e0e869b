from df_minter.main import run

run()
