from f1gpt.main import main

main()
